"""
Shared pytest fixtures for the harness unit tests.

Every test gets its own output directory and a fake node binary, so nothing here
needs the real chain software.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from chain_systest.config import HarnessConfig
from chain_systest.system import SystemUnderTest
from tests.chain_systest.helpers import FakeChain


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., HarnessConfig]:
    """Factory for fast configurations rooted in a temporary directory."""

    def make(**overrides: object) -> HarnessConfig:
        values: dict[str, object] = {
            "binary": "fakewasmd",
            "output_dir": tmp_path / "testnet",
            "nodes_count": 2,
            "block_time": 0.05,
            "command_timeout": 5.0,
            "startup_timeout": 2.0,
            "stop_timeout": 0.2,
            "block_wait_multiplier": 20.0,
        }
        values.update(overrides)
        return HarnessConfig(**values)

    return make


@pytest.fixture
def harness_config(config_factory: Callable[..., HarnessConfig]) -> HarnessConfig:
    """Two-node configuration."""
    return config_factory()


@pytest.fixture
def fake_chain(harness_config: HarnessConfig) -> FakeChain:
    """Fake node binary for the default configuration."""
    return FakeChain(harness_config)


@pytest.fixture
def system(harness_config: HarnessConfig, fake_chain: FakeChain) -> Iterator[SystemUnderTest]:
    """A set-up, reset cluster backed by the fake binary."""
    sut = SystemUnderTest(harness_config, fake_chain, rpc_factory=fake_chain.rpc_factory)
    sut.setup_chain()
    sut.reset_chain()
    yield sut
    sut.close()
