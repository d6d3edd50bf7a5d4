"""
Pytest plugin exposing the cluster as fixtures.

Load with ``-p chain_systest.pytest_plugin``. Tests marked ``system_test`` are
skipped when the node binary is not installed.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from pathlib import Path

import pytest

from .chain_cli import ChainCli
from .config import HarnessConfig, load_config
from .metrics import generate_metrics
from .system import SystemUnderTest

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
"""Format of harness log lines."""


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add command-line options for the system under test."""
    group = parser.getgroup("systest", "multi-node system tests")
    group.addoption(
        "--binary",
        action="store",
        default=None,
        help="Node binary to test (name on PATH or path, default: wasmd)",
    )
    group.addoption(
        "--nodes-count",
        action="store",
        type=int,
        default=None,
        help="Number of validator nodes (default: 4)",
    )
    group.addoption(
        "--block-time",
        action="store",
        type=float,
        default=None,
        help="Target block interval in seconds (default: 1)",
    )
    group.addoption(
        "--sut-output-dir",
        action="store",
        default=None,
        help="Directory for the node home directories (default: testnet)",
    )
    group.addoption(
        "--sut-config",
        action="store",
        default=None,
        help="YAML file with harness settings",
    )
    group.addoption(
        "--sut-verbose",
        action="store_true",
        default=False,
        help="Log every command the harness runs",
    )
    group.addoption(
        "--sut-metrics-file",
        action="store",
        default=None,
        help="Write harness metrics in Prometheus text format to this file at exit",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the marker and configure logging."""
    config.addinivalue_line(
        "markers",
        "system_test: end-to-end test against a running cluster of the node binary",
    )
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def harness_config_from_options(config: pytest.Config) -> HarnessConfig:
    """Resolve the harness configuration, command-line options winning."""
    output_dir = config.getoption("--sut-output-dir")
    return load_config(
        config.getoption("--sut-config"),
        binary=config.getoption("--binary"),
        nodes_count=config.getoption("--nodes-count"),
        block_time=config.getoption("--block-time"),
        output_dir=Path(output_dir) if output_dir else None,
        verbose=True if config.getoption("--sut-verbose") else None,
    )


def binary_available(binary: str) -> bool:
    """Whether ``binary`` can be executed."""
    return shutil.which(binary) is not None


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip system tests when the node binary is missing."""
    system_tests = [item for item in items if item.get_closest_marker("system_test")]
    if not system_tests:
        return

    binary = harness_config_from_options(config).binary
    if binary_available(binary):
        return

    skip = pytest.mark.skip(reason=f"node binary {binary!r} not found on PATH")
    for item in system_tests:
        item.add_marker(skip)


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Dump harness metrics if requested."""
    target = session.config.getoption("--sut-metrics-file")
    if target:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(generate_metrics())
        logger.info("Harness metrics written to %s", path)


@pytest.fixture(scope="session")
def sut_config(pytestconfig: pytest.Config) -> HarnessConfig:
    """Harness configuration for the session."""
    return harness_config_from_options(pytestconfig)


@pytest.fixture(scope="session")
def sut(sut_config: HarnessConfig) -> Iterator[SystemUnderTest]:
    """
    The cluster, shared by all tests of the session.

    Set up and reset once. Tests that need a pristine chain call ``reset_chain()``
    themselves. Stopped at session end.
    """
    system = SystemUnderTest(sut_config)
    system.setup_chain()
    system.reset_chain()
    yield system
    system.close()


@pytest.fixture
def cli(sut: SystemUnderTest) -> ChainCli:
    """Command-line driver bound to node0."""
    return sut.cli()
