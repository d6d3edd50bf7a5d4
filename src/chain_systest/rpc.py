"""
Minimal client for the node RPC endpoint.

Only ``GET /status`` is needed: it reports the latest block height, and answering
at all means the node is up.
"""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx

from .exceptions import StateQueryError
from .json_path import get_path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: Final = 5.0
"""HTTP request timeout in seconds. Status requests are tiny."""

STATUS_ENDPOINT: Final = "/status"
"""Node status endpoint."""

HEIGHT_PATH: Final = "result.sync_info.latest_block_height"
"""Location of the latest height in the status response."""

TRANSIENT_ERRORS: Final = (httpx.TransportError, httpx.HTTPStatusError)
"""Errors that mean "not ready yet" rather than "broken"."""


class RpcClient:
    """Synchronous status client for one node."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def __enter__(self) -> RpcClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release pooled connections."""
        self._client.close()

    def status(self) -> dict[str, Any]:
        """
        Fetch the node status.

        Raises:
            httpx.TransportError: If the node cannot be reached.
            httpx.HTTPStatusError: If the node answers with an error status.
            StateQueryError: If the body is not a JSON object.
        """
        response = self._client.get(STATUS_ENDPOINT)
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as e:
            raise StateQueryError(STATUS_ENDPOINT, f"response is not JSON: {e}") from e
        if not isinstance(body, dict):
            raise StateQueryError(STATUS_ENDPOINT, "response is not a JSON object")
        return body

    def latest_height(self) -> int:
        """
        Latest committed block height.

        Raises:
            StateQueryError: If the status lacks a numeric height.
        """
        raw = get_path(self.status(), HEIGHT_PATH)
        try:
            return int(raw)
        except (TypeError, ValueError) as e:
            raise StateQueryError(HEIGHT_PATH, f"not an integer: {raw!r}") from e

    def is_up(self) -> bool:
        """Whether the node answers status requests."""
        try:
            self.status()
        except TRANSIENT_ERRORS as e:
            logger.debug("%s not reachable: %s", self.base_url, e)
            return False
        return True
