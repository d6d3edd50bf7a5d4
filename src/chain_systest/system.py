"""
The system under test.

Wires the process controller, genesis mutator, CLI driver and block monitor into
the test-facing workflow:

    sut.reset_chain()
    sut.modify_genesis_cli([...], [...])    # zero or more times
    sut.start_chain()
    cli = sut.cli()
    ...
    sut.await_next_block()

Genesis may only change between a reset and the next start.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TypeVar

from .binary import CommandResult, ExecBinary, NodeBinary
from .chain_cli import ChainCli
from .config import HarnessConfig
from .genesis import GenesisDocument, GenesisMutator, JsonMutator
from .monitor import BlockMonitor
from .process import NodeState, ProcessController
from .rpc import RpcClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

PACKAGE_LOGGER = "chain_systest"
"""Root logger of the package, raised to DEBUG in verbose mode."""


class SystemUnderTest:
    """A local multi-node cluster of the node binary."""

    def __init__(
        self,
        config: HarnessConfig,
        binary: NodeBinary | None = None,
        *,
        rpc_factory: Callable[[int], RpcClient] | None = None,
    ) -> None:
        """
        Args:
            config: Cluster configuration.
            binary: Node binary capability. Defaults to running ``config.binary``.
            rpc_factory: Builds the status client of a node by index.
        """
        self.config = config
        self.binary: NodeBinary = binary or ExecBinary(config)
        self._rpc_factory = rpc_factory or (lambda i: RpcClient(config.rpc_url(i)))

        self.controller = ProcessController(config, self.binary, rpc_factory=self._rpc_factory)
        self.genesis = GenesisMutator(config, self.binary)
        self._monitor: BlockMonitor | None = None

        if config.verbose:
            logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)

    @property
    def genesis_frozen(self) -> bool:
        """Whether the chain has been started since the last reset."""
        return self.genesis.frozen

    @property
    def is_running(self) -> bool:
        """Whether every node is running."""
        return all(n.state is NodeState.RUNNING for n in self.controller.nodes)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def setup_chain(self) -> None:
        """Create the node homes if needed. See ``ProcessController.setup_chain``."""
        self.controller.setup_chain()

    def reset_chain(self) -> None:
        """Stop the cluster and return every node to its pristine state."""
        self._close_monitor()
        self.controller.reset_chain()
        self.genesis.unfreeze()

    def start_chain(self) -> None:
        """Start every node. Genesis is frozen from here until the next reset."""
        self.genesis.freeze()
        self.controller.start_chain()

    def stop_chain(self) -> None:
        """Stop every node. Genesis stays frozen until the next reset."""
        self._close_monitor()
        self.controller.stop_chain()

    def for_each_node_exec_and_wait(
        self, args: Sequence[str], *, expect_clean: bool = True
    ) -> list[CommandResult]:
        """Run an offline command against every node. See ``ProcessController``."""
        return self.controller.for_each_node_exec_and_wait(args, expect_clean=expect_clean)

    def with_each_node_home(self, fn: Callable[[int, Path], T]) -> list[T]:
        """Apply a read-only ``fn(index, home)`` to every node home."""
        return self.controller.with_each_node_home(fn)

    def node_path(self, index: int) -> Path:
        """Home directory of node ``index``."""
        return self.controller.node_path(index)

    def genesis_path(self, index: int = 0) -> Path:
        """Genesis document of node ``index``."""
        return self.controller.genesis_path(index)

    # -------------------------------------------------------------------------
    # Genesis
    # -------------------------------------------------------------------------

    def modify_genesis_cli(self, *edit_commands: Sequence[str]) -> None:
        """
        Apply genesis edit commands as one all-or-nothing batch.

        Raises:
            GenesisFrozenError: If the chain was started since the last reset.
            GenesisEditError: If an edit fails. The batch was rolled back.
        """
        self.genesis.modify_cli(*edit_commands)
        self.controller.mark_configured()

    def modify_genesis_json(self, *mutators: JsonMutator) -> None:
        """
        Apply in-process genesis edits as one all-or-nothing batch.

        Raises:
            GenesisFrozenError: If the chain was started since the last reset.
            GenesisEditError: If a mutator raises.
        """
        self.genesis.modify_json(*mutators)
        self.controller.mark_configured()

    def read_genesis_json(self) -> str:
        """Genesis document of the primary node as raw text."""
        return self.genesis.read_json()

    def read_genesis(self) -> GenesisDocument:
        """Genesis document of the primary node as a typed view."""
        return self.genesis.read()

    # -------------------------------------------------------------------------
    # Runtime
    # -------------------------------------------------------------------------

    @property
    def monitor(self) -> BlockMonitor:
        """Block monitor watching node0."""
        if self._monitor is None:
            self._monitor = BlockMonitor(
                self._rpc_factory(0),
                block_time=self.config.block_time,
                default_timeout=self.config.block_wait_timeout,
            )
        return self._monitor

    def _close_monitor(self) -> None:
        if self._monitor is not None:
            self._monitor.rpc.close()
            self._monitor = None

    def await_next_block(self, *, timeout: float | None = None) -> int:
        """Block until the chain height rises. Returns the new height."""
        return self.monitor.await_next_block(timeout=timeout)

    def await_n_blocks(self, n: int, *, timeout: float | None = None) -> int:
        """Block until ``n`` more blocks are committed."""
        return self.monitor.await_n_blocks(n, timeout=timeout)

    def await_height(self, height: int, *, timeout: float | None = None) -> int:
        """Block until the chain reaches ``height``."""
        return self.monitor.await_height(height, timeout=timeout)

    def current_height(self) -> int:
        """Latest committed height of node0."""
        return self.monitor.current_height()

    def cli(self, *, node_index: int = 0) -> ChainCli:
        """A command-line driver bound to node ``node_index``."""
        return ChainCli(self.config, self.binary, node_index=node_index)

    def close(self) -> None:
        """Stop the cluster and release clients."""
        self.stop_chain()
