"""
Chain progress monitor.

Block waits poll the RPC status of one node. Polling never runs faster than the
block interval, and connection errors while a node boots are retried rather than
raised.
"""

from __future__ import annotations

import logging
import time

from . import metrics
from .rpc import TRANSIENT_ERRORS, RpcClient
from .wait import wait_until

logger = logging.getLogger(__name__)


class BlockMonitor:
    """Waits for block height to advance."""

    def __init__(
        self,
        rpc: RpcClient,
        *,
        block_time: float,
        default_timeout: float,
    ) -> None:
        """
        Args:
            rpc: Client of the node to watch.
            block_time: Minimum block interval. Also the poll interval.
            default_timeout: Bound used when a call does not pass one.
        """
        self.rpc = rpc
        self.block_time = block_time
        self.default_timeout = default_timeout

    def current_height(self) -> int:
        """Latest height as reported now."""
        height = self.rpc.latest_height()
        metrics.chain_height.set(height)
        return height

    def await_height(self, target: int, *, timeout: float | None = None) -> int:
        """
        Block until the chain reaches ``target``.

        Returns:
            The observed height, at least ``target``.

        Raises:
            HarnessTimeoutError: If the height is not reached within the bound.
        """
        bound = self.default_timeout if timeout is None else timeout
        return self._await_height(target, bound, time.monotonic() + bound)

    def await_n_blocks(self, n: int, *, timeout: float | None = None) -> int:
        """
        Block until ``n`` blocks past the height observed on entry.

        The bound covers the whole call, including the wait for a first block.
        Without an explicit timeout it scales with ``n``.
        """
        if n < 1:
            raise ValueError(f"n must be positive, got {n}")
        bound = self.default_timeout * n if timeout is None else timeout
        deadline = time.monotonic() + bound
        start_height = self._entry_height(bound, deadline)
        return self._await_height(start_height + n, bound, deadline)

    def await_next_block(self, *, timeout: float | None = None) -> int:
        """
        Block until the height rises strictly above the height observed on entry.

        Returns:
            The new height.

        Raises:
            HarnessTimeoutError: If no new block appears within the bound.
        """
        return self.await_n_blocks(1, timeout=timeout)

    def _await_height(self, target: int, bound: float, deadline: float) -> int:
        def reached() -> int | None:
            height = self.current_height()
            return height if height >= target else None

        start = time.monotonic()
        height = wait_until(
            reached,
            timeout=bound,
            deadline=deadline,
            interval=self.block_time,
            description=f"block height {target} at {self.rpc.base_url}",
            retry_on=TRANSIENT_ERRORS,
        )
        metrics.block_wait_duration.observe(time.monotonic() - start)
        logger.debug("Reached height %d (wanted %d)", height, target)
        return height

    def _entry_height(self, bound: float, deadline: float) -> int:
        # The node may still be booting when the first wait starts.
        return wait_until(
            lambda: self.current_height() or None,
            timeout=bound,
            deadline=deadline,
            interval=self.block_time,
            description=f"first block at {self.rpc.base_url}",
            retry_on=TRANSIENT_ERRORS,
        )
