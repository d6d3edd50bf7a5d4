"""
Harness configuration.

Settings are resolved in layers, later layers winning:

1. Defaults defined in this module.
2. A YAML file, given explicitly or through the ``SYSTEST_CONFIG`` environment variable.
3. ``SYSTEST_<FIELD>`` environment variables (e.g. ``SYSTEST_NODES_COUNT=1``).
4. Keyword overrides, typically from pytest options or the ``systest`` command.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final, get_origin

import yaml
from pydantic import Field, field_validator

from .base import HarnessModel

CONFIG_ENV_VAR: Final = "SYSTEST_CONFIG"
"""Environment variable naming a YAML configuration file."""

ENV_PREFIX: Final = "SYSTEST_"
"""Prefix of per-field environment overrides."""

DEFAULT_BINARY: Final = "wasmd"
"""Node binary under test. Looked up on PATH unless a path is given."""

DEFAULT_OUTPUT_DIR: Final = Path("testnet")
"""Directory holding one home directory per node."""

DEFAULT_NODES_COUNT: Final = 4
"""Number of validator nodes in the cluster."""

DEFAULT_CHAIN_ID: Final = "testing"
"""Chain id passed to every command."""

DEFAULT_DENOM: Final = "stake"
"""Staking and fee denomination."""

DEFAULT_BLOCK_TIME: Final = 1.0
"""Target block interval in seconds (the consensus commit timeout)."""

DEFAULT_RPC_PORT: Final = 26657
"""RPC port of node0. Node i listens on DEFAULT_RPC_PORT + i * rpc_port_step."""

DEFAULT_BLOCK_WAIT_MULTIPLIER: Final = 6.0
"""Block waits give up after this many block intervals."""


class HarnessConfig(HarnessModel):
    """Everything the harness needs to know about the cluster it drives."""

    binary: str = DEFAULT_BINARY
    """Executable name or path of the node binary."""

    output_dir: Path = DEFAULT_OUTPUT_DIR
    """Root of the node home directories."""

    nodes_count: int = Field(default=DEFAULT_NODES_COUNT, ge=1)
    """Number of validator nodes."""

    chain_id: str = DEFAULT_CHAIN_ID
    """Chain id of the test network."""

    denom: str = DEFAULT_DENOM
    """Staking and fee denomination."""

    block_time: float = Field(default=DEFAULT_BLOCK_TIME, gt=0)
    """Target block interval in seconds."""

    rpc_host: str = "localhost"
    """Host the node RPC endpoints listen on."""

    rpc_port_base: int = Field(default=DEFAULT_RPC_PORT, gt=0, lt=65536)
    """RPC port of node0."""

    rpc_port_step: int = Field(default=1, ge=1)
    """Port distance between consecutive nodes."""

    keyring_backend: str = "test"
    """Keyring backend. The test backend never prompts for a passphrase."""

    min_gas_prices: str = "0.000001stake"
    """Minimum gas prices each validator accepts."""

    command_timeout: float = Field(default=60.0, gt=0)
    """Upper bound for a single CLI invocation in seconds."""

    startup_timeout: float = Field(default=60.0, gt=0)
    """Upper bound for a node to answer RPC after spawning, in seconds."""

    stop_timeout: float = Field(default=10.0, gt=0)
    """Grace period between SIGTERM and SIGKILL, in seconds."""

    block_wait_multiplier: float = Field(default=DEFAULT_BLOCK_WAIT_MULTIPLIER, gt=0)
    """Block waits give up after this many block intervals."""

    module_cache_dirs: tuple[str, ...] = ("wasm",)
    """Application cache subdirectories of a node home that a reset must remove."""

    reset_command: tuple[str, ...] = ("comet", "unsafe-reset-all")
    """Offline maintenance command wiping node-local state."""

    init_command: tuple[str, ...] = ("testnet", "init-files")
    """Command creating the node home directories of a local testnet."""

    start_args: tuple[str, ...] = ("--log_level=info",)
    """Extra arguments appended to ``start``."""

    verbose: bool = False
    """Log every command invocation and its output."""

    @field_validator("module_cache_dirs", "reset_command", "init_command", "start_args", mode="before")
    @classmethod
    def _split_words(cls, v: Any) -> Any:
        """Accept whitespace or comma separated strings for sequence settings."""
        if isinstance(v, str):
            return tuple(part for part in v.replace(",", " ").split() if part)
        return v

    @property
    def binary_name(self) -> str:
        """Base name of the binary; names the per-node home subdirectory."""
        return Path(self.binary).name

    @property
    def block_wait_timeout(self) -> float:
        """Default bound for block waits, in seconds."""
        return self.block_time * self.block_wait_multiplier

    def node_home(self, index: int) -> Path:
        """Home directory of node ``index``."""
        return self.output_dir / f"node{index}" / self.binary_name

    def node_log(self, index: int) -> Path:
        """File receiving the stdout and stderr of node ``index``."""
        return self.output_dir / f"node{index}.out"

    def rpc_port(self, index: int) -> int:
        """RPC port of node ``index``."""
        return self.rpc_port_base + index * self.rpc_port_step

    def rpc_address(self, index: int) -> str:
        """RPC address in the form the CLI ``--node`` flag expects."""
        return f"tcp://{self.rpc_host}:{self.rpc_port(index)}"

    def rpc_url(self, index: int) -> str:
        """HTTP base URL of the RPC endpoint of node ``index``."""
        return f"http://{self.rpc_host}:{self.rpc_port(index)}"


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``SYSTEST_<FIELD>`` overrides for known fields."""
    overrides: dict[str, Any] = {}
    for name, field in HarnessConfig.model_fields.items():
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            continue
        # Sequence fields are split by the model validator.
        if get_origin(field.annotation) is tuple:
            overrides[name] = raw
        elif field.annotation is bool:
            overrides[name] = raw.strip().lower() in ("1", "true", "yes", "on")
        else:
            overrides[name] = raw
    return overrides


def load_config(
    path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> HarnessConfig:
    """
    Resolve the harness configuration.

    Args:
        path: Optional YAML file. Falls back to ``$SYSTEST_CONFIG``.
        environ: Environment to read overrides from. Defaults to ``os.environ``.
        **overrides: Explicit field values. ``None`` values are ignored.

    Returns:
        The validated configuration.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value fails validation.
    """
    env = os.environ if environ is None else environ

    data: dict[str, Any] = {}

    config_path = path if path is not None else env.get(CONFIG_ENV_VAR)
    if config_path:
        with Path(config_path).open(encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{config_path}: expected a mapping, got {type(loaded).__name__}")
        data.update(loaded)

    data.update(_env_overrides(env))
    data.update({k: v for k, v in overrides.items() if v is not None})

    return HarnessConfig(**data)
