"""
Command-line driver.

A typed wrapper around the client half of the node binary: key management,
transactions and queries against one node of a running cluster. Every call
blocks until the binary exits. Transactions additionally block until the
transaction is included in a block.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Final

from .binary import CommandResult, NodeBinary
from .config import HarnessConfig
from .exceptions import CommandOutputError, KeyExistsError, StateQueryError, TxFailedError
from .json_path import get_path
from .types import Coin, KeyInfo, TxResult, Validator
from .wait import wait_until

logger = logging.getLogger(__name__)

FUNDING_KEY: Final = "node0"
"""Keyring entry of the first validator, created by the testnet init command."""

TX_PENDING_MARKER: Final = "not found"
"""Error text of a transaction lookup before the transaction is committed."""


class ChainCli:
    """
    Synchronous client bound to one node.

    An instance serializes its own calls. Several instances may run side by side.
    """

    def __init__(
        self,
        config: HarnessConfig,
        binary: NodeBinary,
        *,
        node_index: int = 0,
        fees: str | None = None,
    ) -> None:
        """
        Args:
            config: Cluster configuration.
            binary: Capability used to run the client commands.
            node_index: Node whose home (keyring) and RPC endpoint are used.
            fees: Fee flag value used by ``fund_address``. Defaults to one unit
                of the staking denomination.
        """
        self.config = config
        self.binary = binary
        self.node_index = node_index
        self.fees = fees or f"1{config.denom}"
        self._lock = threading.RLock()

    @property
    def home(self) -> Path:
        """Home directory holding the keyring."""
        return self.config.node_home(self.node_index)

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _online(self, args: Sequence[str]) -> CommandResult:
        return self.binary.exec_online(
            list(args), home=self.home, node=self.config.rpc_address(self.node_index)
        )

    def _keys(self, args: Sequence[str]) -> CommandResult:
        return self.binary.exec_offline(
            ["keys", *args, f"--keyring-backend={self.config.keyring_backend}"], self.home
        )

    def _query(self, args: Sequence[str]) -> Any:
        return self._online([*args, "--output=json"]).json()

    def _tx_flags(self) -> list[str]:
        return [
            f"--chain-id={self.config.chain_id}",
            f"--keyring-backend={self.config.keyring_backend}",
            "--output=json",
            "--broadcast-mode=sync",
            "--yes",
        ]

    def _broadcast(self, args: Sequence[str]) -> TxResult:
        argv = ["tx", *args, *self._tx_flags()]
        result = self._online(argv)
        tx = self._parse_tx(result)
        if not tx.ok:
            raise TxFailedError(
                result.argv, code=tx.code, raw_log=tx.raw_log, txhash=tx.txhash, stdout=result.stdout
            )
        logger.debug("Broadcast %s as %s", " ".join(args[:2]), tx.txhash)

        included = self._await_inclusion(tx.txhash)
        if not included.ok:
            raise TxFailedError(
                result.argv,
                code=included.code,
                raw_log=included.raw_log,
                txhash=included.txhash,
                stdout=result.stdout,
            )
        logger.info("Tx %s included at height %d", included.txhash, included.height)
        return included

    def _await_inclusion(self, txhash: str) -> TxResult:
        def lookup() -> TxResult | None:
            result = self._online(["q", "tx", txhash, "--output=json"])
            if not result.ok:
                if TX_PENDING_MARKER in result.stderr:
                    return None
                result.require_success()
            return self._parse_tx(result)

        return wait_until(
            lookup,
            timeout=self.config.block_wait_timeout,
            interval=self.config.block_time / 2,
            description=f"tx {txhash} to be included",
        )

    @staticmethod
    def _parse_tx(result: CommandResult) -> TxResult:
        data = result.json()
        try:
            return TxResult.model_validate(data)
        except ValueError as e:
            raise CommandOutputError(
                result.argv,
                result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                detail="output is not a transaction response",
            ) from e

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def add_key(self, name: str) -> str:
        """
        Create a key in the keyring.

        Returns:
            The new account address.

        Raises:
            KeyExistsError: If ``name`` is taken.
        """
        with self._lock:
            if self._keys(["show", name]).ok:
                raise KeyExistsError(name)
            result = self._keys(["add", name, "--output=json"])
            key = KeyInfo.model_validate(result.json())
            logger.info("Added key %s: %s", name, key.address)
            return key.address

    def get_key_addr(self, name: str) -> str:
        """Address of an existing key."""
        with self._lock:
            address = self._keys(["show", name, "--address"]).require_success().stdout.strip()
            if not address:
                raise StateQueryError(f"keys.{name}", "no address printed")
            return address

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def stake(self, validator_addr: str, amount: str, *flags: str) -> TxResult:
        """
        Delegate ``amount`` to a validator.

        Args:
            validator_addr: Operator address.
            amount: Coin in textual form, e.g. ``10000stake``.
            *flags: Extra flags, typically ``--from`` and ``--fees``.

        Raises:
            TxFailedError: If the chain rejects the transaction.
        """
        with self._lock:
            return self._broadcast(["staking", "delegate", validator_addr, amount, *flags])

    def unstake(self, validator_addr: str, amount: str, *flags: str) -> TxResult:
        """Undelegate ``amount`` from a validator. See ``stake``."""
        with self._lock:
            return self._broadcast(["staking", "unbond", validator_addr, amount, *flags])

    def fund_address(self, address: str, amount: str) -> TxResult:
        """Send ``amount`` from the first validator's account to ``address``."""
        with self._lock:
            return self._broadcast(
                ["bank", "send", FUNDING_KEY, address, amount, f"--fees={self.fees}"]
            )

    def custom_command(self, *args: str) -> TxResult:
        """Run any ``tx`` subcommand, e.g. ``custom_command("bank", "send", ...)``."""
        with self._lock:
            return self._broadcast(args)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query_validators(self) -> dict[str, Any]:
        """Raw ``q staking validators`` response."""
        with self._lock:
            return self._query(["q", "staking", "validators"])

    def validators(self) -> list[Validator]:
        """Typed validator list."""
        return [Validator.model_validate(v) for v in get_path(self.query_validators(), "validators")]

    def query_balance(self, address: str, denom: str) -> int:
        """Balance of ``address`` in ``denom``. Zero when the account holds none."""
        with self._lock:
            data = self._query(["q", "bank", "balance", address, denom])
        raw = get_path(data, "balance.amount", "0")
        try:
            return int(raw)
        except (TypeError, ValueError) as e:
            raise StateQueryError("balance.amount", f"not an integer: {raw!r}") from e

    def query_balances(self, address: str) -> list[Coin]:
        """All balances of ``address``."""
        with self._lock:
            data = self._query(["q", "bank", "balances", address])
        return [Coin.model_validate(c) for c in get_path(data, "balances", [])]

    def custom_query(self, *args: str) -> Any:
        """Run any query, e.g. ``custom_query("q", "staking", "delegation", a, v)``."""
        with self._lock:
            return self._query(args)
