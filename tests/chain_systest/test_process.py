"""Tests for the node process controller."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from chain_systest.config import HarnessConfig
from chain_systest.exceptions import HarnessTimeoutError, NodeFanoutError
from chain_systest.process import GENESIS_BACKUP_SUFFIX, NodeState, ProcessController
from tests.chain_systest.helpers import FakeChain, FakeProcess


@pytest.fixture
def controller(harness_config: HarnessConfig, fake_chain: FakeChain) -> Iterator[ProcessController]:
    """Controller over freshly initialized homes, stopped at teardown."""
    ctl = ProcessController(harness_config, fake_chain, rpc_factory=fake_chain.rpc_factory)
    ctl.setup_chain()
    yield ctl
    ctl.stop_chain()


def fill_module_cache(home: Path) -> Path:
    """Create a non-empty wasm directory in ``home``."""
    wasm = home / "wasm"
    (wasm / "state").mkdir(parents=True, exist_ok=True)
    (wasm / "state" / "testing").write_bytes(b"cached module")
    return wasm


class TestSetup:
    """Tests for setup_chain."""

    def test_init_command(self, controller: ProcessController, fake_chain: FakeChain) -> None:
        """The testnet is created with the configured flags."""
        init = fake_chain.calls[0]

        assert init[:2] == ("testnet", "init-files")
        assert "--v=2" in init
        assert "--chain-id=testing" in init
        assert "--keyring-backend=test" in init
        assert "--single-host" in init

    def test_homes_and_backup(self, controller: ProcessController) -> None:
        """Every node has a genesis file and node0 a pristine backup."""
        for node in controller.nodes:
            assert node.genesis_path.exists()
            assert node.state is NodeState.RESET

        backup = controller.genesis_path(0).with_name("genesis.json" + GENESIS_BACKUP_SUFFIX)
        assert backup.read_bytes() == controller.genesis_path(0).read_bytes()

    def test_existing_homes_are_reused(
        self, controller: ProcessController, harness_config: HarnessConfig, fake_chain: FakeChain
    ) -> None:
        """A second setup does not run the init command again."""
        again = ProcessController(harness_config, fake_chain, rpc_factory=fake_chain.rpc_factory)
        calls = len(fake_chain.calls)

        again.setup_chain()

        assert len(fake_chain.calls) == calls
        assert all(n.state is NodeState.RESET for n in again.nodes)

    def test_paths(self, controller: ProcessController, harness_config: HarnessConfig) -> None:
        """Node paths follow the configured layout."""
        assert controller.node_path(1) == harness_config.output_dir / "node1" / "fakewasmd"
        assert controller.genesis_path(1) == controller.node_path(1) / "config" / "genesis.json"
        assert [n.rpc_port for n in controller.nodes] == [26657, 26658]

    def test_with_each_node_home(self, controller: ProcessController) -> None:
        """The callback sees every node in index order."""
        seen = controller.with_each_node_home(lambda i, home: (i, home.name))
        assert seen == [(0, "fakewasmd"), (1, "fakewasmd")]


class TestReset:
    """Tests for reset_chain."""

    def test_restores_pristine_genesis(self, controller: ProcessController) -> None:
        """Edits to any node's genesis are undone."""
        pristine = controller.genesis_path(0).read_bytes()
        for node in controller.nodes:
            node.genesis_path.write_text("{}")

        controller.reset_chain()

        for node in controller.nodes:
            assert node.genesis_path.read_bytes() == pristine

    @settings(max_examples=8)
    @given(nodes_count=st.integers(min_value=1, max_value=6))
    def test_clears_module_cache_on_every_node(
        self, tmp_path_factory: pytest.TempPathFactory, nodes_count: int
    ) -> None:
        """No wasm directory survives a reset, whatever the cluster size."""
        config = HarnessConfig(
            binary="fakewasmd",
            output_dir=tmp_path_factory.mktemp("testnet"),
            nodes_count=nodes_count,
            stop_timeout=0.2,
        )
        chain = FakeChain(config)
        ctl = ProcessController(config, chain, rpc_factory=chain.rpc_factory)
        ctl.setup_chain()
        caches = [fill_module_cache(node.home) for node in ctl.nodes]

        ctl.reset_chain()

        assert not any(cache.exists() for cache in caches)
        assert all((node.home / "data" / "priv_validator_state.json").exists() for node in ctl.nodes)

    def test_idempotent(self, controller: ProcessController) -> None:
        """Resetting twice is the same as resetting once."""
        controller.reset_chain()
        first = [n.genesis_path.read_bytes() for n in controller.nodes]

        controller.reset_chain()

        assert [n.genesis_path.read_bytes() for n in controller.nodes] == first
        assert all(n.state is NodeState.RESET for n in controller.nodes)

    def test_failure_names_node(
        self, controller: ProcessController, fake_chain: FakeChain, harness_config: HarnessConfig
    ) -> None:
        """A failing reset reports exactly the failing node."""
        fake_chain.fail_when("comet", "unsafe-reset-all", f"--home={harness_config.node_home(1)}")

        with pytest.raises(NodeFanoutError) as exc_info:
            controller.reset_chain()

        assert exc_info.value.failed_nodes == [1]
        assert "reset failed" in str(exc_info.value)

    def test_stops_running_nodes(self, controller: ProcessController, fake_chain: FakeChain) -> None:
        """A running cluster is stopped first."""
        controller.start_chain()

        controller.reset_chain()

        assert all(p.poll() is not None for p in fake_chain.processes.values())
        assert controller.running == []


class TestForEachNodeExecAndWait:
    """Tests for for_each_node_exec_and_wait."""

    def test_results_in_node_order(
        self, controller: ProcessController, harness_config: HarnessConfig
    ) -> None:
        """Every node runs the command against its own home."""
        caches = [fill_module_cache(n.home) for n in controller.nodes]

        results = controller.for_each_node_exec_and_wait(["comet", "unsafe-reset-all"])

        assert [r.argv[-1] for r in results] == [
            f"--home={harness_config.node_home(i)}" for i in range(harness_config.nodes_count)
        ]
        assert not any(c.exists() for c in caches)

    def test_leftover_cache_fails(self, controller: ProcessController) -> None:
        """A wiping command that leaves the cache behind fails on every affected node."""
        fill_module_cache(controller.node_path(1))

        with pytest.raises(NodeFanoutError) as exc_info:
            controller.for_each_node_exec_and_wait(["keys", "add", "extra"])

        assert exc_info.value.failed_nodes == [1]
        assert "module cache left behind" in str(exc_info.value)

    def test_clean_check_can_be_disabled(self, controller: ProcessController) -> None:
        """Non-wiping commands skip the cache check."""
        fill_module_cache(controller.node_path(0))

        results = controller.for_each_node_exec_and_wait(["keys", "add", "extra"], expect_clean=False)

        assert all(r.ok for r in results)

    def test_command_failure(self, controller: ProcessController, fake_chain: FakeChain) -> None:
        """Non-zero exits are reported per node."""
        with pytest.raises(NodeFanoutError) as exc_info:
            controller.for_each_node_exec_and_wait(["no-such-command"])

        assert exc_info.value.failed_nodes == [0, 1]

    def test_empty_command_is_rejected(
        self, controller: ProcessController, fake_chain: FakeChain
    ) -> None:
        """An empty argument list fails before any node runs."""
        calls = len(fake_chain.calls)

        with pytest.raises(ValueError, match="no command given"):
            controller.for_each_node_exec_and_wait([])

        assert len(fake_chain.calls) == calls


class TestStartStop:
    """Tests for start_chain and stop_chain."""

    def test_start(self, controller: ProcessController, harness_config: HarnessConfig) -> None:
        """All nodes run and log to their own file."""
        controller.start_chain()

        assert [n.index for n in controller.running] == [0, 1]
        assert harness_config.node_log(1).read_text().startswith("node1 starting")

    def test_start_running_is_noop(self, controller: ProcessController, fake_chain: FakeChain) -> None:
        """Starting twice does not spawn new processes."""
        controller.start_chain()
        handles = [n.handle for n in controller.nodes]

        controller.start_chain()

        assert [n.handle for n in controller.nodes] == handles

    def test_crash_on_start(
        self,
        controller: ProcessController,
        fake_chain: FakeChain,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A node dying during startup is named, its log shown, and everything stopped."""
        fake_chain.crash_on_start.add(1)

        with caplog.at_level(logging.ERROR, logger="chain_systest.process"):
            with pytest.raises(NodeFanoutError) as exc_info:
                controller.start_chain()

        assert exc_info.value.failed_nodes == [1]
        assert "exited with code 1" in str(exc_info.value)
        assert "panic: fake crash on start" in caplog.text
        assert all(n.handle is None for n in controller.nodes)
        assert all(p.poll() is not None for p in fake_chain.processes.values())

    def test_unreachable_rpc_times_out(self, config_factory: Callable[..., HarnessConfig]) -> None:
        """A node that never answers RPC fails startup with a timeout."""
        config = config_factory(startup_timeout=0.3)
        chain = FakeChain(config)
        chain.unreachable.add(0)
        ctl = ProcessController(config, chain, rpc_factory=chain.rpc_factory)
        ctl.setup_chain()

        with pytest.raises(NodeFanoutError) as exc_info:
            ctl.start_chain()

        assert exc_info.value.failed_nodes == [0]
        assert isinstance(exc_info.value.failures[0], HarnessTimeoutError)
        assert ctl.running == []

    def test_stop(self, controller: ProcessController, fake_chain: FakeChain) -> None:
        """Stopping terminates every process."""
        controller.start_chain()

        controller.stop_chain()

        assert all(n.state is NodeState.STOPPED for n in controller.nodes)
        assert all(p.terminated and not p.killed for p in fake_chain.processes.values())

    def test_stop_is_idempotent(self, controller: ProcessController) -> None:
        """A second stop, or a stop before any start, does nothing."""
        controller.stop_chain()
        assert all(n.state is NodeState.RESET for n in controller.nodes)

        controller.start_chain()
        controller.stop_chain()
        controller.stop_chain()
        assert all(n.state is NodeState.STOPPED for n in controller.nodes)

    def test_stop_kills_after_grace_period(
        self, controller: ProcessController, fake_chain: FakeChain
    ) -> None:
        """Processes ignoring SIGTERM are killed."""
        fake_chain.ignore_sigterm = True
        controller.start_chain()

        controller.stop_chain()

        assert all(p.killed for p in fake_chain.processes.values())

    def test_stop_uses_handles_seen_on_entry(
        self, controller: ProcessController, fake_chain: FakeChain, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Every started process is stopped even if node handles are cleared meanwhile."""
        controller.start_chain()
        stop = fake_chain.stop

        def stop_and_clear(handle: FakeProcess, timeout: float) -> None:
            for node in controller.nodes:
                node.handle = None
            stop(handle, timeout)

        monkeypatch.setattr(fake_chain, "stop", stop_and_clear)

        controller.stop_chain()

        assert all(p.terminated for p in fake_chain.processes.values())
        assert all(n.state is NodeState.STOPPED for n in controller.nodes)


def test_mark_configured_only_touches_reset_nodes(controller: ProcessController) -> None:
    """Running nodes are not demoted to configured."""
    controller.mark_configured()
    assert all(n.state is NodeState.CONFIGURED for n in controller.nodes)

    controller.start_chain()
    controller.mark_configured()
    assert all(n.state is NodeState.RUNNING for n in controller.nodes)
