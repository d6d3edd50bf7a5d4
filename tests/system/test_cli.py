"""
System tests for the node binary's command line.

Each test shares the session cluster. Tests that need a pristine chain reset it
first. Run with ``systest`` or ``pytest -m system_test``.
"""

from __future__ import annotations

import logging
import time

import pytest

from chain_systest import ChainCli, SystemUnderTest
from chain_systest.exceptions import KeyExistsError
from chain_systest.genesis import ContinuousVestingAccount, DelayedVestingAccount
from chain_systest.types import Coin

logger = logging.getLogger(__name__)

pytestmark = pytest.mark.system_test


def key(cli: ChainCli, name: str) -> str:
    """Address of ``name``, creating the key on first use."""
    try:
        return cli.add_key(name)
    except KeyExistsError:
        return cli.get_key_addr(name)


@pytest.mark.timeout(120)
def test_unsafe_reset_all(sut: SystemUnderTest) -> None:
    """
    The reset maintenance command removes the wasm directory of every node.

    Given a non-empty wasm directory in a node home, running the reset command
    on all nodes leaves no wasm directory behind.
    """
    sut.reset_chain()
    wasm_dir = sut.node_path(0) / "wasm"
    wasm_dir.mkdir(parents=True, exist_ok=True)
    (wasm_dir / "testing").write_bytes(b"")

    sut.for_each_node_exec_and_wait(sut.config.reset_command)

    leftovers = sut.with_each_node_home(lambda i, home: (home / "wasm").exists())
    assert not any(leftovers), f"wasm dir left on node(s) {[i for i, x in enumerate(leftovers) if x]}"


@pytest.mark.timeout(120)
def test_vesting_accounts(sut: SystemUnderTest, cli: ChainCli) -> None:
    """
    Genesis accounts added with vesting flags get the right vesting schedule.

    - Delayed vesting: only an end time, all coins vesting
    - Continuous vesting: start and end time, all coins vesting
    - Continuous vesting with cash: part of the balance is spendable
    """
    sut.reset_chain()
    vest1 = key(cli, "vesting1")
    vest2 = key(cli, "vesting2")
    vest3 = key(cli, "vesting3")
    start = int(time.time()) + 60
    end = int(time.time()) + 3600

    sut.modify_genesis_cli(
        [
            "genesis",
            "add-genesis-account",
            vest1,
            "100000000stake",
            "--vesting-amount=100000000stake",
            f"--vesting-end-time={end}",
        ],
        [
            "genesis",
            "add-genesis-account",
            vest2,
            "100000001stake",
            "--vesting-amount=100000001stake",
            f"--vesting-start-time={start}",
            f"--vesting-end-time={end}",
        ],
        [
            "genesis",
            "add-genesis-account",
            vest3,
            "200000002stake",
            "--vesting-amount=100000002stake",
            f"--vesting-start-time={start}",
            f"--vesting-end-time={end}",
        ],
    )
    genesis = sut.read_genesis()

    # Delayed vesting has no start time.
    delayed = genesis.accounts_of_type(DelayedVestingAccount)
    assert len(delayed) == 1
    assert delayed[0].address == vest1
    assert delayed[0].original_vesting == [Coin(denom="stake", amount=100000000)]
    assert delayed[0].end_time == end
    assert delayed[0].start_time == 0

    continuous = genesis.accounts_of_type(ContinuousVestingAccount)
    assert len(continuous) == 2
    assert continuous[0].address == vest2
    assert continuous[0].original_vesting == [Coin(denom="stake", amount=100000001)]
    assert continuous[0].end_time == end
    assert continuous[0].start_time == start

    assert continuous[1].address == vest3
    assert continuous[1].original_vesting == [Coin(denom="stake", amount=100000002)]
    assert continuous[1].end_time == end
    assert continuous[1].start_time == start

    assert genesis.balance_of(vest1) == [Coin(denom="stake", amount=100000000)]
    assert genesis.balance_of(vest2) == [Coin(denom="stake", amount=100000001)]
    assert genesis.balance_of(vest3) == [Coin(denom="stake", amount=200000002)]


@pytest.mark.timeout(180)
def test_stake_unstake(sut: SystemUnderTest, cli: ChainCli) -> None:
    """Delegate tokens to a validator, then undelegate part of them."""
    sut.reset_chain()
    account = key(cli, "account1")
    sut.modify_genesis_cli(["genesis", "add-genesis-account", account, "100000000stake"])
    sut.start_chain()

    validator = cli.validators()[0].operator_address

    logger.info("Waiting for block")
    sut.await_next_block()

    cli.stake(validator, "10000stake", f"--from={account}", "--fees=1stake")

    logger.info("Waiting for block")
    sut.await_next_block()

    assert cli.query_balance(account, "stake") == 99989999

    delegation = cli.custom_query("q", "staking", "delegation", account, validator)
    assert delegation["balance"]["amount"] == "10000"
    assert delegation["balance"]["denom"] == "stake"

    cli.unstake(validator, "5000stake", f"--from={account}", "--fees=1stake")

    logger.info("Waiting for block")
    sut.await_next_block()

    delegation = cli.custom_query("q", "staking", "delegation", account, validator)
    assert delegation["balance"]["amount"] == "5000"
    assert delegation["balance"]["denom"] == "stake"

    unbonding = cli.custom_query("q", "staking", "unbonding-delegation", account, validator)
    assert unbonding["entries"][0]["balance"] == "5000"
