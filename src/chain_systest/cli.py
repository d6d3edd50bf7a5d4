"""CLI command for running the system-test suite against a node binary."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path

import click
import pytest

DEFAULT_TEST_PATH = "tests/system"
"""Suite collected when no test path is given."""


@click.command(
    context_settings={
        "ignore_unknown_options": True,
        "allow_extra_args": True,
    }
)
@click.argument("pytest_args", nargs=-1, type=click.UNPROCESSED)
@click.option(
    "--binary",
    default=None,
    help="Node binary to test (default: wasmd)",
)
@click.option(
    "--nodes-count",
    type=click.IntRange(min=1),
    default=None,
    help="Number of validator nodes (default: 4)",
)
@click.option(
    "--block-time",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Target block interval in seconds (default: 1)",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for the node home directories (default: testnet)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML file with harness settings",
)
@click.option(
    "--metrics-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write harness metrics in Prometheus text format to this file",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Log every command the harness runs",
)
@click.pass_context
def systest(
    ctx: click.Context,
    pytest_args: Sequence[str],
    binary: str | None,
    nodes_count: int | None,
    block_time: float | None,
    output_dir: str | None,
    config_file: str | None,
    metrics_file: str | None,
    verbose: bool,
) -> None:
    """
    Run the end-to-end system tests against a local cluster.

    Remaining arguments are passed to pytest.

    Examples:
        # Full suite against wasmd on PATH
        systest

        # One test, single node, custom binary
        systest tests/system/test_cli.py -k stake --binary=./build/wasmd --nodes-count=1
    """
    args = ["-p", "chain_systest.pytest_plugin", "-m", "system_test"]

    if binary:
        args.append(f"--binary={binary}")
    if nodes_count is not None:
        args.append(f"--nodes-count={nodes_count}")
    if block_time is not None:
        args.append(f"--block-time={block_time}")
    if output_dir:
        args.append(f"--sut-output-dir={output_dir}")
    if config_file:
        args.append(f"--sut-config={config_file}")
    if metrics_file:
        args.append(f"--sut-metrics-file={metrics_file}")
    if verbose:
        args.append("--sut-verbose")

    passthrough = [*pytest_args, *ctx.args]
    if not any(Path(a.split("::")[0]).exists() for a in passthrough):
        passthrough.append(DEFAULT_TEST_PATH)
    args.extend(passthrough)

    exit_code = pytest.main(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    systest()
