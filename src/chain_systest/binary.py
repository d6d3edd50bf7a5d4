"""
The node binary capability.

The harness never links against the chain software. Everything it does goes through
one of five calls on a ``NodeBinary``:

- ``start`` spawns a long-running node process for a home directory.
- ``stop`` terminates it.
- ``reset`` runs the offline maintenance command that wipes node-local state.
- ``exec_offline`` runs a command that only touches files in a home directory.
- ``exec_online`` runs a client command against a running node's RPC endpoint.

``ExecBinary`` implements this with ``subprocess``. Unit tests substitute an
in-process fake.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from . import metrics
from .config import HarnessConfig
from .exceptions import CommandError, CommandOutputError, HarnessTimeoutError, ProcessError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one invocation of the node binary."""

    argv: tuple[str, ...]
    """Full argument vector, executable first."""

    exit_code: int
    """Process exit code. Zero means success."""

    stdout: str = ""
    """Captured standard output."""

    stderr: str = ""
    """Captured standard error."""

    duration: float = field(default=0.0, compare=False)
    """Wall-clock duration in seconds."""

    @property
    def ok(self) -> bool:
        """Whether the invocation exited with code zero."""
        return self.exit_code == 0

    def require_success(self) -> CommandResult:
        """
        Return self if the invocation succeeded.

        Raises:
            CommandError: On a non-zero exit code.
        """
        if not self.ok:
            raise CommandError(
                self.argv, self.exit_code, stdout=self.stdout, stderr=self.stderr
            )
        return self

    def json(self) -> Any:
        """
        Parse standard output as JSON.

        Some binaries print JSON to stderr when stdout is empty; that is accepted too.

        Raises:
            CommandError: If the invocation failed.
            CommandOutputError: If the output is not valid JSON.
        """
        self.require_success()
        text = self.stdout.strip() or self.stderr.strip()
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise CommandOutputError(
                self.argv,
                self.exit_code,
                stdout=self.stdout,
                stderr=self.stderr,
                detail=f"output is not JSON ({e.msg} at position {e.pos})",
            ) from e


class ProcessHandle(Protocol):
    """The part of ``subprocess.Popen`` the harness relies on."""

    @property
    def pid(self) -> int:
        """OS process id."""
        ...

    def poll(self) -> int | None:
        """Exit code if the process has exited, None while it runs."""
        ...

    def terminate(self) -> None:
        """Request a graceful shutdown."""
        ...

    def kill(self) -> None:
        """Force the process to exit."""
        ...

    def wait(self, timeout: float | None = None) -> int:
        """
        Block until the process exits.

        Raises:
            subprocess.TimeoutExpired: If it is still running after ``timeout``.
        """
        ...


class NodeBinary(Protocol):
    """
    Capability to drive the node binary.

    Uses structural subtyping: anything with these methods can stand in for the
    real executable.
    """

    def start(self, home: Path, log_path: Path) -> ProcessHandle:
        """
        Spawn a node process serving ``home``.

        Args:
            home: Node home directory.
            log_path: File receiving the process output.

        Returns:
            Handle to the running process.

        Raises:
            ProcessError: If the process cannot be spawned.
        """
        ...

    def stop(self, handle: ProcessHandle, timeout: float) -> None:
        """
        Stop a node process, escalating to a kill after ``timeout`` seconds.

        Stopping an already exited process is a no-op.
        """
        ...

    def reset(self, home: Path) -> CommandResult:
        """Run the offline reset maintenance command against ``home``."""
        ...

    def exec_offline(self, args: Sequence[str], home: Path | None = None) -> CommandResult:
        """Run a command that works on files only. ``home`` is appended as ``--home``."""
        ...

    def exec_online(self, args: Sequence[str], *, home: Path, node: str) -> CommandResult:
        """Run a client command against the node RPC address ``node``."""
        ...


def command_kind(args: Sequence[str]) -> str:
    """Metric label for an invocation: its leading subcommand."""
    return args[0] if args else "none"


class ExecBinary:
    """Runs the configured executable as a subprocess."""

    def __init__(self, config: HarnessConfig) -> None:
        self.config = config

    def _run(self, args: Sequence[str]) -> CommandResult:
        argv = (self.config.binary, *args)
        kind = command_kind(args)

        logger.debug("exec: %s", " ".join(argv))
        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.config.command_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            metrics.commands_total.labels(kind=kind, outcome="timeout").inc()
            raise HarnessTimeoutError(
                f"command did not finish: {' '.join(argv)}",
                timeout=self.config.command_timeout,
            ) from e
        except OSError as e:
            metrics.commands_total.labels(kind=kind, outcome="error").inc()
            raise ProcessError(f"cannot execute {self.config.binary}: {e}") from e

        duration = time.monotonic() - start
        metrics.command_duration.labels(kind=kind).observe(duration)
        metrics.commands_total.labels(
            kind=kind, outcome="ok" if proc.returncode == 0 else "failed"
        ).inc()

        result = CommandResult(
            argv=argv,
            exit_code=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
            duration=duration,
        )
        logger.debug(
            "exit=%d in %.2fs\nstdout: %s\nstderr: %s",
            result.exit_code,
            duration,
            result.stdout.strip(),
            result.stderr.strip(),
        )
        return result

    def exec_offline(self, args: Sequence[str], home: Path | None = None) -> CommandResult:
        if home is not None:
            args = [*args, f"--home={home}"]
        return self._run(args)

    def exec_online(self, args: Sequence[str], *, home: Path, node: str) -> CommandResult:
        return self._run([*args, f"--home={home}", f"--node={node}"])

    def reset(self, home: Path) -> CommandResult:
        return self.exec_offline(self.config.reset_command, home)

    def start(self, home: Path, log_path: Path) -> ProcessHandle:
        argv = [self.config.binary, "start", f"--home={home}", *self.config.start_args]
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.debug("spawn: %s > %s", " ".join(argv), log_path)
        with log_path.open("ab") as log:
            try:
                # Own session so a Ctrl-C on the test run does not hit the nodes first.
                return subprocess.Popen(
                    argv,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as e:
                raise ProcessError(f"cannot spawn {self.config.binary}: {e}") from e

    def stop(self, handle: ProcessHandle, timeout: float) -> None:
        if handle.poll() is not None:
            return

        handle.terminate()
        try:
            handle.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(
                "pid %d ignored SIGTERM for %.1fs, sending SIGKILL", handle.pid, timeout
            )
            handle.kill()
            handle.wait(timeout=timeout)


def tail(path: Path, lines: int = 30) -> str:
    """Last ``lines`` lines of a text file, or an empty string if it does not exist."""
    try:
        with path.open("rb") as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            f.seek(max(0, size - 64 * 1024))
            data = f.read().decode("utf-8", errors="replace")
    except FileNotFoundError:
        return ""
    return "\n".join(data.splitlines()[-lines:])
