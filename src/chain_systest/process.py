"""
Node process lifecycle.

The controller owns every node of the cluster. A node moves through:

    UNINITIALIZED --setup--> RESET --genesis edit--> CONFIGURED --start--> RUNNING
                                ^                                              |
                                +-------------------reset------- STOPPED <-stop+

Operations that touch every node fan out on a thread pool and join on all
tasks before reporting, so a failure on one node never orphans another.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final, TypeVar

import httpx

from . import metrics
from .binary import CommandResult, NodeBinary, ProcessHandle, tail
from .config import HarnessConfig
from .exceptions import NodeFanoutError, ProcessError
from .genesis.mutator import genesis_file
from .rpc import RpcClient
from .wait import await_path_absent, wait_until

logger = logging.getLogger(__name__)

T = TypeVar("T")

GENESIS_BACKUP_SUFFIX: Final = ".orig"
"""Suffix of the pristine genesis copy restored on every reset."""


class NodeState(Enum):
    """Lifecycle state of a node."""

    UNINITIALIZED = "uninitialized"
    """Home directory not created yet."""

    RESET = "reset"
    """Pristine state, ready for genesis edits."""

    CONFIGURED = "configured"
    """Genesis edited, not started."""

    RUNNING = "running"
    """Process alive and answering RPC."""

    STOPPED = "stopped"
    """Process stopped. State on disk is kept until the next reset."""


@dataclass(slots=True)
class Node:
    """One validator node of the cluster."""

    index: int
    """Position in the cluster. Node 0 is the primary."""

    home: Path
    """Isolated home directory."""

    rpc_port: int
    """RPC port the node listens on."""

    state: NodeState = NodeState.UNINITIALIZED
    """Current lifecycle state."""

    handle: ProcessHandle | None = field(default=None, repr=False)
    """OS process while running."""

    @property
    def genesis_path(self) -> Path:
        """Genesis document of this node."""
        return genesis_file(self.home)


class ProcessController:
    """Spawns, stops and resets the node processes."""

    def __init__(
        self,
        config: HarnessConfig,
        binary: NodeBinary,
        *,
        rpc_factory: Callable[[int], RpcClient] | None = None,
    ) -> None:
        """
        Args:
            config: Cluster configuration.
            binary: Capability used for every process and command.
            rpc_factory: Builds the status client of a node by index. Defaults
                to a real HTTP client on the configured port.
        """
        self.config = config
        self.binary = binary
        self._rpc_factory = rpc_factory or (lambda i: RpcClient(config.rpc_url(i)))
        self.nodes = [
            Node(index=i, home=config.node_home(i), rpc_port=config.rpc_port(i))
            for i in range(config.nodes_count)
        ]

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def node_path(self, index: int) -> Path:
        """Home directory of node ``index``."""
        return self.nodes[index].home

    def genesis_path(self, index: int = 0) -> Path:
        """Genesis document of node ``index``."""
        return self.nodes[index].genesis_path

    def with_each_node_home(self, fn: Callable[[int, Path], T]) -> list[T]:
        """Apply a read-only ``fn(index, home)`` to every node, in index order."""
        return [fn(node.index, node.home) for node in self.nodes]

    @property
    def running(self) -> list[Node]:
        """Nodes currently running."""
        return [n for n in self.nodes if n.state is NodeState.RUNNING]

    def mark_configured(self) -> None:
        """Record that the genesis of every node has been edited."""
        for node in self.nodes:
            if node.state is NodeState.RESET:
                node.state = NodeState.CONFIGURED

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def setup_chain(self) -> None:
        """
        Create the node home directories.

        Does nothing but mark nodes as reset when every home already holds a
        genesis document. Node0's pristine genesis is kept as a backup for resets.

        Raises:
            CommandError: If the init command fails.
        """
        if all(node.genesis_path.exists() for node in self.nodes):
            logger.info("Reusing %d node home(s) under %s", len(self.nodes), self.config.output_dir)
        else:
            logger.info(
                "Initializing %d node(s) under %s", len(self.nodes), self.config.output_dir
            )
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
            args = [
                *self.config.init_command,
                f"--chain-id={self.config.chain_id}",
                f"--output-dir={self.config.output_dir}",
                f"--v={self.config.nodes_count}",
                f"--keyring-backend={self.config.keyring_backend}",
                f"--commit-timeout={self.config.block_time}s",
                f"--minimum-gas-prices={self.config.min_gas_prices}",
                f"--starting-ip-address={self.config.rpc_host}",
                "--single-host",
            ]
            self.binary.exec_offline(args).require_success()

        backup = self._genesis_backup()
        if not backup.exists():
            shutil.copyfile(self.genesis_path(0), backup)

        for node in self.nodes:
            node.state = NodeState.RESET

    def reset_chain(self) -> None:
        """
        Return every node to a pristine state.

        Stops running nodes, restores the pristine genesis, clears module caches
        and runs the reset maintenance command on every node. Idempotent.

        Raises:
            NodeFanoutError: Names every node whose reset failed.
        """
        logger.info("Resetting chain (%d node(s))", len(self.nodes))
        self.stop_chain()

        backup = self._genesis_backup()
        if backup.exists():
            for node in self.nodes:
                shutil.copyfile(backup, node.genesis_path)

        def reset(node: Node) -> CommandResult:
            self._clear_module_caches(node)
            return self.binary.reset(node.home).require_success()

        self._fan_out("reset", reset)
        for node in self.nodes:
            node.state = NodeState.RESET

    def for_each_node_exec_and_wait(
        self, args: Sequence[str], *, expect_clean: bool = True
    ) -> list[CommandResult]:
        """
        Run an offline command against every node concurrently and wait for all.

        Args:
            args: Command arguments, without ``--home``.
            expect_clean: Also require every module cache directory to be gone
                afterwards (the command is a state-wiping one).

        Returns:
            Results in node order.

        Raises:
            NodeFanoutError: Names every node whose command failed or left caches behind.
            ValueError: If ``args`` is empty.
        """
        if not args:
            raise ValueError("no command given")

        def run(node: Node) -> CommandResult:
            result = self.binary.exec_offline(list(args), node.home).require_success()
            if expect_clean:
                leftover = [d for d in self._module_cache_paths(node) if d.exists()]
                if leftover:
                    raise ProcessError(
                        f"module cache left behind: {', '.join(map(str, leftover))}",
                        node_index=node.index,
                    )
            return result

        return self._fan_out(" ".join(args), run)

    def start_chain(self) -> None:
        """
        Launch every node and wait until each answers RPC.

        Raises:
            NodeFanoutError: Names the nodes that failed to spawn or come up.
                All nodes have been stopped again.
        """
        logger.info("Starting chain (%d node(s))", len(self.nodes))

        def start(node: Node) -> None:
            if node.state is NodeState.RUNNING:
                return
            handle = self.binary.start(node.home, self.config.node_log(node.index))
            node.handle = handle
            self._await_up(node, handle)
            node.state = NodeState.RUNNING
            metrics.running_nodes.inc()

        try:
            self._fan_out("start", start)
        except NodeFanoutError as e:
            for index in e.failed_nodes:
                log = tail(self.config.node_log(index))
                if log:
                    logger.error("node%d output (last lines):\n%s", index, log)
            self.stop_chain()
            raise

        logger.info("Chain running, RPC on port(s) %s", [n.rpc_port for n in self.nodes])

    def stop_chain(self) -> None:
        """
        Stop every node process concurrently. Idempotent.

        Raises:
            NodeFanoutError: Names every node that could not be stopped.
        """
        # Handles are captured up front, a node may be cleared while stopping.
        handles = {n.index: n.handle for n in self.nodes if n.handle is not None}
        to_stop = [n for n in self.nodes if n.index in handles]
        if not to_stop:
            return

        logger.info("Stopping %d node(s)", len(to_stop))

        def stop(node: Node) -> None:
            self.binary.stop(handles[node.index], self.config.stop_timeout)
            if node.state is NodeState.RUNNING:
                metrics.running_nodes.dec()
            node.handle = None
            node.state = NodeState.STOPPED

        self._fan_out("stop", stop, to_stop)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _genesis_backup(self) -> Path:
        path = self.genesis_path(0)
        return path.with_name(path.name + GENESIS_BACKUP_SUFFIX)

    def _module_cache_paths(self, node: Node) -> list[Path]:
        return [node.home / name for name in self.config.module_cache_dirs]

    def _clear_module_caches(self, node: Node) -> None:
        for path in self._module_cache_paths(node):
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            await_path_absent(path, timeout=self.config.stop_timeout)

    def _await_up(self, node: Node, handle: ProcessHandle) -> None:
        rpc = self._rpc_factory(node.index)

        def up() -> bool:
            code = handle.poll()
            if code is not None:
                raise ProcessError(f"exited with code {code} during startup", node_index=node.index)
            rpc.status()
            return True

        try:
            wait_until(
                up,
                timeout=self.config.startup_timeout,
                interval=0.1,
                backoff=1.5,
                max_interval=1.0,
                description=f"node{node.index} RPC on port {node.rpc_port}",
                retry_on=(httpx.TransportError, httpx.HTTPStatusError),
            )
        finally:
            rpc.close()

    def _fan_out(
        self,
        operation: str,
        fn: Callable[[Node], T],
        nodes: Sequence[Node] | None = None,
    ) -> list[T]:
        targets = list(self.nodes if nodes is None else nodes)
        if not targets:
            return []

        prefix = operation.partition(" ")[0] or "fan-out"
        with ThreadPoolExecutor(
            max_workers=len(targets), thread_name_prefix=f"systest-{prefix}"
        ) as pool:
            futures = [(node, pool.submit(fn, node)) for node in targets]

        results: list[T] = []
        failures: dict[int, BaseException] = {}
        for node, future in futures:
            error = future.exception()
            if error is None:
                results.append(future.result())
            else:
                failures[node.index] = error

        if failures:
            raise NodeFanoutError(operation, failures)
        return results
