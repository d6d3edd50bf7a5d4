"""Value types parsed from the node binary's output."""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Final

from pydantic import NonNegativeInt

from .base import ChainJsonModel

COIN_PATTERN: Final = re.compile(r"^\s*(\d+)\s*([a-zA-Z][a-zA-Z0-9/:._-]{2,127})\s*$")
"""Textual coin form: amount immediately followed by denom, e.g. ``100000000stake``."""


class Coin(ChainJsonModel):
    """An amount of a single denomination."""

    denom: str
    """Denomination, e.g. ``stake``."""

    amount: NonNegativeInt
    """Arbitrary-precision, non-negative amount. JSON encodes it as a string."""

    @classmethod
    def parse(cls, text: str) -> Coin:
        """
        Parse the command-line coin form.

        Raises:
            ValueError: If ``text`` is not ``<amount><denom>``.
        """
        match = COIN_PATTERN.match(text)
        if match is None:
            raise ValueError(f"invalid coin: {text!r}")
        return cls(denom=match.group(2), amount=int(match.group(1)))

    @classmethod
    def parse_many(cls, text: str) -> list[Coin]:
        """Parse a comma separated list of coins. The empty string yields no coins."""
        return [cls.parse(part) for part in text.split(",") if part.strip()]

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


class TxResult(ChainJsonModel):
    """Broadcast or inclusion result of a transaction."""

    txhash: str
    """Transaction hash, upper-case hex."""

    code: int = 0
    """ABCI result code. Zero means success."""

    raw_log: str = ""
    """Log returned with the result. Holds the reason on failure."""

    height: int = 0
    """Inclusion height. Zero until the transaction is in a block."""

    gas_used: int = 0
    """Gas consumed by execution."""

    @property
    def ok(self) -> bool:
        """Whether the transaction succeeded."""
        return self.code == 0


class Validator(ChainJsonModel):
    """A validator as returned by ``q staking validators``."""

    operator_address: str
    """Bech32 operator address (``...valoper1...``)."""

    status: str = ""
    """Bonding state, e.g. ``BOND_STATUS_BONDED``."""

    tokens: int = 0
    """Bonded tokens."""

    delegator_shares: Decimal = Decimal(0)
    """Total delegator shares, a fixed-point decimal."""

    jailed: bool = False
    """Whether the validator is jailed."""


class KeyInfo(ChainJsonModel):
    """A keyring entry as printed by ``keys add`` / ``keys show``."""

    name: str
    """Key name."""

    address: str
    """Bech32 account address."""

    type: str = "local"
    """Key type."""
