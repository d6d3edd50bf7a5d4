"""
Bounded polling.

Every wait in the harness goes through ``wait_until``: block waits, node startup,
transaction inclusion and directory removal.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from .exceptions import HarnessTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def wait_until(
    predicate: Callable[[], T],
    *,
    timeout: float,
    interval: float = 0.1,
    backoff: float = 1.0,
    max_interval: float | None = None,
    description: str = "condition",
    retry_on: tuple[type[BaseException], ...] = (),
    deadline: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Poll ``predicate`` until it returns a truthy value.

    The predicate is always evaluated at least once, even with a zero timeout.

    Args:
        predicate: Zero-argument callable. Its first truthy result is returned.
        timeout: Total bound in seconds.
        interval: Delay before the second attempt.
        backoff: Factor applied to the delay after every attempt.
        max_interval: Upper bound for the delay.
        description: What is being waited for, used in the timeout message.
        retry_on: Exception types treated as "not yet" instead of propagating.
        deadline: Clock value ending the wait, for consecutive waits sharing
            one bound. Defaults to ``timeout`` from now.
        sleep: Sleep function, replaceable in tests.
        clock: Monotonic clock, replaceable in tests.

    Returns:
        The first truthy value returned by ``predicate``.

    Raises:
        HarnessTimeoutError: If the bound expires first. Carries the last retried error.
    """
    if deadline is None:
        deadline = clock() + timeout
    delay = interval
    last_error: BaseException | None = None
    attempts = 0

    while True:
        attempts += 1
        try:
            result = predicate()
        except retry_on as e:
            last_error = e
            logger.debug("Waiting for %s: attempt %d raised %r", description, attempts, e)
        else:
            if result:
                return result

        remaining = deadline - clock()
        if remaining <= 0:
            raise HarnessTimeoutError(
                f"timed out after {timeout:.1f}s waiting for {description}",
                timeout=timeout,
                last_error=last_error,
            )

        sleep(min(delay, remaining))
        delay *= backoff
        if max_interval is not None:
            delay = min(delay, max_interval)


def await_path_absent(path: Path, *, timeout: float, interval: float = 0.05) -> None:
    """
    Wait until ``path`` no longer exists.

    Raises:
        HarnessTimeoutError: If the path still exists when the bound expires.
    """
    wait_until(
        lambda: not path.exists(),
        timeout=timeout,
        interval=interval,
        description=f"{path} to be removed",
    )
