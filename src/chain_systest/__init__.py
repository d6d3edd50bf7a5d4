"""
End-to-end test harness for multi-node blockchain clusters.

Drives an external node binary (e.g. ``wasmd``): resets node state, edits the
genesis document, starts a local cluster, runs client commands against it and
waits for blocks.
"""

from .binary import CommandResult, ExecBinary, NodeBinary, ProcessHandle
from .chain_cli import ChainCli
from .config import HarnessConfig, load_config
from .exceptions import (
    CommandError,
    CommandOutputError,
    GenesisEditError,
    GenesisFormatError,
    GenesisFrozenError,
    HarnessError,
    HarnessTimeoutError,
    KeyExistsError,
    NodeFanoutError,
    ProcessError,
    StateQueryError,
    TxFailedError,
)
from .genesis import GenesisDocument, GenesisMutator
from .monitor import BlockMonitor
from .process import Node, NodeState, ProcessController
from .rpc import RpcClient
from .system import SystemUnderTest
from .types import Coin, KeyInfo, TxResult, Validator
from .wait import wait_until

__all__ = [
    "BlockMonitor",
    "ChainCli",
    "Coin",
    "CommandError",
    "CommandOutputError",
    "CommandResult",
    "ExecBinary",
    "GenesisDocument",
    "GenesisEditError",
    "GenesisFormatError",
    "GenesisFrozenError",
    "GenesisMutator",
    "HarnessConfig",
    "HarnessError",
    "HarnessTimeoutError",
    "KeyExistsError",
    "KeyInfo",
    "Node",
    "NodeBinary",
    "NodeFanoutError",
    "NodeState",
    "ProcessController",
    "ProcessError",
    "ProcessHandle",
    "RpcClient",
    "StateQueryError",
    "SystemUnderTest",
    "TxFailedError",
    "TxResult",
    "Validator",
    "load_config",
    "wait_until",
]
