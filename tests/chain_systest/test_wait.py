"""Tests for bounded polling."""

from __future__ import annotations

from pathlib import Path

import pytest

from chain_systest.exceptions import HarnessTimeoutError
from chain_systest.wait import await_path_absent, wait_until


class FakeClock:
    """Monotonic clock advanced only by sleeping."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestWaitUntil:
    """Tests for wait_until."""

    def test_returns_first_truthy_value(self) -> None:
        """The first truthy predicate result is returned."""
        clock = FakeClock()
        values = iter([None, 0, "", 42])

        result = wait_until(
            lambda: next(values), timeout=10, interval=1, sleep=clock.sleep, clock=clock
        )

        assert result == 42
        assert clock.sleeps == [1, 1, 1]

    def test_evaluates_once_with_zero_timeout(self) -> None:
        """A zero timeout still checks the predicate once."""
        clock = FakeClock()
        assert wait_until(lambda: True, timeout=0, sleep=clock.sleep, clock=clock) is True
        assert clock.sleeps == []

    def test_timeout_raises(self) -> None:
        """An expired bound raises with the bound and description."""
        clock = FakeClock()

        with pytest.raises(HarnessTimeoutError, match="waiting for the moon") as exc_info:
            wait_until(
                lambda: False,
                timeout=3,
                interval=1,
                description="the moon",
                sleep=clock.sleep,
                clock=clock,
            )

        assert exc_info.value.timeout == 3
        assert exc_info.value.last_error is None
        assert clock.now == pytest.approx(3)

    def test_backoff_grows_interval_up_to_max(self) -> None:
        """Delays grow by the backoff factor and are capped."""
        clock = FakeClock()

        with pytest.raises(HarnessTimeoutError):
            wait_until(
                lambda: False,
                timeout=100,
                interval=1,
                backoff=2,
                max_interval=5,
                sleep=clock.sleep,
                clock=clock,
            )

        assert clock.sleeps[:5] == [1, 2, 4, 5, 5]

    def test_last_sleep_is_clipped_to_deadline(self) -> None:
        """The final sleep never overshoots the bound."""
        clock = FakeClock()

        with pytest.raises(HarnessTimeoutError):
            wait_until(lambda: False, timeout=2.5, interval=1, sleep=clock.sleep, clock=clock)

        assert clock.sleeps == [1, 1, 0.5]

    def test_shared_deadline_overrides_timeout(self) -> None:
        """An explicit deadline ends the wait, the timeout is only reported."""
        clock = FakeClock()
        clock.now = 10.0

        with pytest.raises(HarnessTimeoutError, match="after 5.0s") as exc_info:
            wait_until(
                lambda: False,
                timeout=5,
                interval=1,
                deadline=11.5,
                sleep=clock.sleep,
                clock=clock,
            )

        assert clock.sleeps == [1, 0.5]
        assert exc_info.value.timeout == 5

    def test_retried_errors_are_reported(self) -> None:
        """Errors listed in retry_on are retried and attached to the timeout."""
        clock = FakeClock()

        def flaky() -> bool:
            raise ConnectionError("refused")

        with pytest.raises(HarnessTimeoutError, match="refused") as exc_info:
            wait_until(
                flaky,
                timeout=1,
                interval=0.5,
                retry_on=(ConnectionError,),
                sleep=clock.sleep,
                clock=clock,
            )

        assert isinstance(exc_info.value.last_error, ConnectionError)

    def test_retried_error_then_success(self) -> None:
        """A transient error followed by success returns normally."""
        clock = FakeClock()
        attempts = iter([ConnectionError("boot"), 7])

        def predicate() -> int:
            item = next(attempts)
            if isinstance(item, Exception):
                raise item
            return item

        assert (
            wait_until(
                predicate,
                timeout=5,
                retry_on=(ConnectionError,),
                sleep=clock.sleep,
                clock=clock,
            )
            == 7
        )

    def test_unlisted_errors_propagate(self) -> None:
        """Errors not listed in retry_on escape immediately."""
        clock = FakeClock()

        def broken() -> bool:
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            wait_until(
                broken,
                timeout=5,
                retry_on=(ConnectionError,),
                sleep=clock.sleep,
                clock=clock,
            )
        assert clock.sleeps == []


class TestAwaitPathAbsent:
    """Tests for await_path_absent."""

    def test_absent_path_returns(self, tmp_path: Path) -> None:
        """A missing path returns immediately."""
        await_path_absent(tmp_path / "missing", timeout=0)

    def test_present_path_times_out(self, tmp_path: Path) -> None:
        """A path that stays raises a timeout."""
        target = tmp_path / "wasm"
        target.mkdir()

        with pytest.raises(HarnessTimeoutError, match="to be removed"):
            await_path_absent(target, timeout=0.1, interval=0.02)
