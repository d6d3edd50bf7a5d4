"""
Typed, read-only view of a genesis document.

Accounts are a tagged union dispatched on their ``@type``. Vesting variants are
composed from the shared ``BaseVestingAccount`` structure, which in turn wraps a
``BaseAccount``, mirroring the nesting of the JSON:

    {
      "@type": "/cosmos.vesting.v1beta1.ContinuousVestingAccount",
      "base_vesting_account": {
        "base_account": {"address": "wasm1...", ...},
        "original_vesting": [{"denom": "stake", "amount": "100000001"}],
        "end_time": "1700003600"
      },
      "start_time": "1700000060"
    }

Timestamps are Unix seconds. The binary prints them as strings; both forms parse.
Zero means unset.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Annotated, Any, Final, Literal, TypeVar, Union

from pydantic import (
    ConfigDict,
    Discriminator,
    Field,
    NonNegativeInt,
    Tag,
    ValidationError,
    model_validator,
)

from ..base import ChainJsonModel
from ..exceptions import GenesisFormatError, StateQueryError
from ..json_path import get_path
from ..types import Coin

BASE_ACCOUNT_TYPE: Final = "/cosmos.auth.v1beta1.BaseAccount"
"""Type URL of a plain account."""

DELAYED_VESTING_TYPE: Final = "/cosmos.vesting.v1beta1.DelayedVestingAccount"
"""Type URL of an account whose vesting amount unlocks at once at ``end_time``."""

CONTINUOUS_VESTING_TYPE: Final = "/cosmos.vesting.v1beta1.ContinuousVestingAccount"
"""Type URL of an account whose vesting amount unlocks linearly from ``start_time``."""

OTHER_ACCOUNT_TAG: Final = "other"
"""Union tag for every account type without a dedicated model."""

ACCOUNTS_PATH: Final = "app_state.auth.accounts"
"""Location of the account list."""

BALANCES_PATH: Final = "app_state.bank.balances"
"""Location of the balance list."""


# -----------------------------------------------------------------------------
# Shared structures
# -----------------------------------------------------------------------------


class BaseAccount(ChainJsonModel):
    """Identity and replay-protection fields every account carries."""

    address: str
    """Bech32 account address."""

    pub_key: Any = None
    """Public key, unset until the account signs its first transaction."""

    account_number: NonNegativeInt = 0
    """Account number assigned at creation."""

    sequence: NonNegativeInt = 0
    """Replay-protection counter."""


class BaseVestingAccount(ChainJsonModel):
    """Fields shared by all vesting schedules."""

    base_account: BaseAccount
    """The wrapped account."""

    original_vesting: list[Coin] = Field(default_factory=list)
    """Coins locked at genesis."""

    delegated_free: list[Coin] = Field(default_factory=list)
    """Delegated coins that had already vested."""

    delegated_vesting: list[Coin] = Field(default_factory=list)
    """Delegated coins that were still vesting."""

    end_time: NonNegativeInt = 0
    """When the schedule completes."""


# -----------------------------------------------------------------------------
# Account variants
# -----------------------------------------------------------------------------


class BaseAccountEntry(BaseAccount):
    """A plain account with no vesting schedule."""

    type_: Literal["/cosmos.auth.v1beta1.BaseAccount"] = Field(alias="@type")
    """Type URL."""


class DelayedVestingAccount(ChainJsonModel):
    """An account whose whole vesting amount unlocks at ``end_time``."""

    type_: Literal["/cosmos.vesting.v1beta1.DelayedVestingAccount"] = Field(alias="@type")
    """Type URL."""

    base_vesting_account: BaseVestingAccount
    """Shared vesting fields."""

    start_time: Literal[0] = 0
    """A delayed schedule has no start. The JSON omits the field."""

    @model_validator(mode="before")
    @classmethod
    def _zero_start(cls, data: Any) -> Any:
        # Some releases print "start_time": "0".
        if isinstance(data, dict) and data.get("start_time") in ("0", 0):
            data = {k: v for k, v in data.items() if k != "start_time"}
        return data

    @property
    def address(self) -> str:
        """Bech32 account address."""
        return self.base_vesting_account.base_account.address

    @property
    def end_time(self) -> int:
        """When the vesting amount unlocks."""
        return self.base_vesting_account.end_time

    @property
    def original_vesting(self) -> list[Coin]:
        """Coins locked at genesis."""
        return self.base_vesting_account.original_vesting


class ContinuousVestingAccount(ChainJsonModel):
    """An account whose vesting amount unlocks linearly between start and end."""

    type_: Literal["/cosmos.vesting.v1beta1.ContinuousVestingAccount"] = Field(alias="@type")
    """Type URL."""

    base_vesting_account: BaseVestingAccount
    """Shared vesting fields."""

    start_time: NonNegativeInt
    """When unlocking begins."""

    @model_validator(mode="after")
    def _ordered_schedule(self) -> ContinuousVestingAccount:
        if not 0 < self.start_time < self.end_time:
            raise ValueError(
                f"continuous vesting needs 0 < start_time < end_time, "
                f"got start_time={self.start_time} end_time={self.end_time}"
            )
        return self

    @property
    def address(self) -> str:
        """Bech32 account address."""
        return self.base_vesting_account.base_account.address

    @property
    def end_time(self) -> int:
        """When the last coin unlocks."""
        return self.base_vesting_account.end_time

    @property
    def original_vesting(self) -> list[Coin]:
        """Coins locked at genesis."""
        return self.base_vesting_account.original_vesting


class OtherAccount(ChainJsonModel):
    """Any other account type: module accounts, periodic vesting and so on."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    type_: str = Field(alias="@type")
    """Type URL."""

    @property
    def raw(self) -> dict[str, Any]:
        """The account JSON as printed by the binary."""
        return self.model_dump(by_alias=True)

    @property
    def address(self) -> str | None:
        """Best-effort address lookup across the common nestings."""
        raw = self.raw
        for path in ("address", "base_account.address", "base_vesting_account.base_account.address"):
            try:
                found = get_path(raw, path, None)
            except StateQueryError:
                continue
            if isinstance(found, str):
                return found
        return None


def _account_tag(value: Any) -> str:
    if isinstance(value, dict):
        type_url = value.get("@type")
    else:
        type_url = getattr(value, "type_", None)
    if type_url in (BASE_ACCOUNT_TYPE, DELAYED_VESTING_TYPE, CONTINUOUS_VESTING_TYPE):
        return type_url
    return OTHER_ACCOUNT_TAG


Account = Annotated[
    Union[
        Annotated[BaseAccountEntry, Tag(BASE_ACCOUNT_TYPE)],
        Annotated[DelayedVestingAccount, Tag(DELAYED_VESTING_TYPE)],
        Annotated[ContinuousVestingAccount, Tag(CONTINUOUS_VESTING_TYPE)],
        Annotated[OtherAccount, Tag(OTHER_ACCOUNT_TAG)],
    ],
    Discriminator(_account_tag),
]
"""A genesis account of any type."""

VestingAccount = DelayedVestingAccount | ContinuousVestingAccount
"""Accounts with a vesting schedule."""

AccountT = TypeVar("AccountT", BaseAccountEntry, DelayedVestingAccount, ContinuousVestingAccount, OtherAccount)


# -----------------------------------------------------------------------------
# Document
# -----------------------------------------------------------------------------


class Balance(ChainJsonModel):
    """Coins held by one address at genesis."""

    address: str
    """Bech32 account address."""

    coins: list[Coin] = Field(default_factory=list)
    """Held coins. Order carries no meaning."""


class GenesisDocument(ChainJsonModel):
    """
    Parsed genesis document.

    Only the sections the harness inspects are typed. Everything else stays
    reachable through ``raw`` and ``get``.
    """

    chain_id: str = ""
    """Chain id the document was generated for."""

    accounts: list[Account] = Field(default_factory=list)
    """Entries of ``app_state.auth.accounts``, in document order."""

    balances: list[Balance] = Field(default_factory=list)
    """Entries of ``app_state.bank.balances``, in document order."""

    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
    """The full document."""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GenesisDocument:
        """
        Build the typed view of a parsed document.

        Raises:
            GenesisFormatError: If a typed section does not match its model.
        """
        if not isinstance(raw, dict):
            raise GenesisFormatError("", f"expected a JSON object, got {type(raw).__name__}")
        try:
            return cls(
                chain_id=raw.get("chain_id", ""),
                accounts=get_path(raw, ACCOUNTS_PATH, []),
                balances=get_path(raw, BALANCES_PATH, []),
                raw=raw,
            )
        except ValidationError as e:
            raise GenesisFormatError("app_state", str(e)) from e

    @classmethod
    def from_json(cls, text: str | bytes) -> GenesisDocument:
        """
        Parse a genesis document.

        Raises:
            GenesisFormatError: If the text is not JSON or does not match the model.
        """
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise GenesisFormatError("", f"not valid JSON: {e}") from e
        return cls.from_dict(raw)

    def get(self, path: str, default: Any = ...) -> Any:
        """Dotted-path lookup in the raw document. See ``json_path.get_path``."""
        if default is ...:
            return get_path(self.raw, path)
        return get_path(self.raw, path, default)

    def accounts_of_type(self, account_type: type[AccountT]) -> list[AccountT]:
        """Accounts of one variant, in document order."""
        return [a for a in self.accounts if type(a) is account_type]

    def iter_addresses(self) -> Iterator[str]:
        """Addresses of all accounts whose address is known."""
        for account in self.accounts:
            if account.address is not None:
                yield account.address

    def account(self, address: str) -> Account | None:
        """The account with ``address``, if present."""
        for account in self.accounts:
            if account.address == address:
                return account
        return None

    def balance_of(self, address: str) -> list[Coin]:
        """All coins recorded for ``address`` across balance entries."""
        return [coin for b in self.balances if b.address == address for coin in b.coins]

    def amount_of(self, address: str, denom: str) -> int:
        """Total genesis balance of ``address`` in ``denom``."""
        return sum(c.amount for c in self.balance_of(address) if c.denom == denom)

    def spendable_of(self, address: str, denom: str) -> int:
        """
        Genesis balance not locked by a vesting schedule.

        For plain accounts this is the whole balance.
        """
        total = self.amount_of(address, denom)
        account = self.account(address)
        if isinstance(account, VestingAccount):
            locked = sum(c.amount for c in account.original_vesting if c.denom == denom)
            return total - locked
        return total
