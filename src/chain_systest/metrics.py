"""
Harness metrics using prometheus_client.

Records what the harness did to the cluster during a test session. The pytest
plugin can dump the text format at session end.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Dedicated registry: keeps the default process collectors out of the dump.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

commands_total = Counter(
    "systest_commands_total",
    "Node binary invocations",
    labelnames=("kind", "outcome"),
    registry=REGISTRY,
)

command_duration = Histogram(
    "systest_command_duration_seconds",
    "Node binary invocation duration",
    labelnames=("kind",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=REGISTRY,
)

genesis_edits_total = Counter(
    "systest_genesis_edits_total",
    "Genesis edit batches",
    labelnames=("outcome",),
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Chain
# -----------------------------------------------------------------------------

block_wait_duration = Histogram(
    "systest_block_wait_seconds",
    "Time spent waiting for new blocks",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
    registry=REGISTRY,
)

chain_height = Gauge(
    "systest_chain_height",
    "Last observed chain height",
    registry=REGISTRY,
)

running_nodes = Gauge(
    "systest_running_nodes",
    "Node processes currently running",
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
