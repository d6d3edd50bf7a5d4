"""
Exception hierarchy for the system-test harness.

Four families map to how a caller should react:

- Process errors: a node could not be spawned, stopped or reset.
- Command errors: an invocation of the node binary failed or printed garbage.
- State errors: the chain answered, but not with the structure a test expects.
- Timeouts: something did not happen in time. Slow, not necessarily broken.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class HarnessError(Exception):
    """
    Base exception for all harness errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# -----------------------------------------------------------------------------
# Process errors
# -----------------------------------------------------------------------------


class ProcessError(HarnessError):
    """
    Raised when a node process cannot be spawned, stopped or reset.

    Attributes:
        node_index: Index of the affected node, if a single node is affected.
    """

    def __init__(self, message: str, *, node_index: int | None = None) -> None:
        self.node_index = node_index
        if node_index is not None:
            message = f"node{node_index}: {message}"
        super().__init__(message)


class NodeFanoutError(ProcessError):
    """
    Raised when an operation fanned out over several nodes failed on some of them.

    Every per-node task has finished by the time this is raised.

    Attributes:
        operation: Name of the fanned-out operation (e.g. "start").
        failures: Exception per failing node index.
    """

    def __init__(self, operation: str, failures: Mapping[int, BaseException]) -> None:
        self.operation = operation
        self.failures = dict(sorted(failures.items()))

        details = "; ".join(f"node{i}: {err}" for i, err in self.failures.items())
        super().__init__(
            f"{operation} failed on {len(self.failures)} node(s) "
            f"{sorted(self.failures)}: {details}"
        )

    @property
    def failed_nodes(self) -> list[int]:
        """Indices of the nodes that failed, in ascending order."""
        return list(self.failures)


# -----------------------------------------------------------------------------
# Command errors
# -----------------------------------------------------------------------------


class CommandError(HarnessError):
    """
    Raised when an invocation of the node binary exits with a non-zero code.

    Attributes:
        argv: Full argument vector of the invocation.
        exit_code: Process exit code.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    def __init__(
        self,
        args: Sequence[str],
        exit_code: int,
        *,
        stdout: str = "",
        stderr: str = "",
        detail: str | None = None,
    ) -> None:
        self.argv = list(args)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

        msg = detail or f"command exited with code {exit_code}"
        msg = f"{msg}: {' '.join(self.argv)}"
        if stderr.strip():
            msg = f"{msg}\nstderr: {stderr.strip()}"
        super().__init__(msg)


class CommandOutputError(CommandError):
    """Raised when a successful invocation prints output that cannot be parsed."""


class TxFailedError(CommandError):
    """
    Raised when the chain rejects a transaction with a non-zero result code.

    Attributes:
        code: ABCI result code.
        raw_log: Log message returned with the result.
        txhash: Hash of the rejected transaction, if known.
    """

    def __init__(
        self,
        args: Sequence[str],
        *,
        code: int,
        raw_log: str = "",
        txhash: str | None = None,
        stdout: str = "",
    ) -> None:
        self.code = code
        self.raw_log = raw_log
        self.txhash = txhash
        super().__init__(
            args,
            0,
            stdout=stdout,
            detail=f"transaction {txhash or '?'} failed with code {code} ({raw_log})",
        )


class GenesisEditError(CommandError):
    """
    Raised when a genesis edit command fails or leaves an invalid document.

    The batch that contained the edit has been rolled back.

    Attributes:
        position: Zero-based position of the failing edit within its batch.
    """

    def __init__(
        self,
        args: Sequence[str],
        exit_code: int,
        *,
        position: int,
        stdout: str = "",
        stderr: str = "",
        detail: str | None = None,
    ) -> None:
        self.position = position
        super().__init__(
            args,
            exit_code,
            stdout=stdout,
            stderr=stderr,
            detail=f"genesis edit #{position} failed" + (f" ({detail})" if detail else ""),
        )


class KeyExistsError(HarnessError):
    """Raised when a key is added under a name that already exists in the keyring."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"key {name!r} already exists")


# -----------------------------------------------------------------------------
# State errors
# -----------------------------------------------------------------------------


class StateQueryError(HarnessError, AssertionError):
    """
    Raised when an expected JSON path is absent or has the wrong shape.

    Also an AssertionError: the chain is reachable but not in the expected state,
    which is a test failure rather than a harness crash.

    Attributes:
        path: Dotted path that was queried.
    """

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(f"{path}: {detail}")


class GenesisFormatError(StateQueryError):
    """Raised when the genesis document does not match the expected structure."""


class GenesisFrozenError(HarnessError):
    """Raised when genesis is modified after the chain has been started."""


# -----------------------------------------------------------------------------
# Timeouts
# -----------------------------------------------------------------------------


class HarnessTimeoutError(HarnessError):
    """
    Raised when a bounded wait expires.

    Attributes:
        timeout: The bound that was exceeded, in seconds.
        last_error: The last transient error observed while waiting, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        timeout: float,
        last_error: BaseException | None = None,
    ) -> None:
        self.timeout = timeout
        self.last_error = last_error
        if last_error is not None:
            message = f"{message} (last error: {last_error})"
        super().__init__(message)
