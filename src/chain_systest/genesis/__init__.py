"""Genesis document model and mutation pipeline."""

from .models import (
    BASE_ACCOUNT_TYPE,
    CONTINUOUS_VESTING_TYPE,
    DELAYED_VESTING_TYPE,
    Account,
    Balance,
    BaseAccount,
    BaseAccountEntry,
    BaseVestingAccount,
    ContinuousVestingAccount,
    DelayedVestingAccount,
    GenesisDocument,
    OtherAccount,
    VestingAccount,
)
from .mutator import GenesisMutator, genesis_file
from .mutators import JsonMutator, set_consensus_max_gas, set_gov_voting_period, set_path

__all__ = [
    "BASE_ACCOUNT_TYPE",
    "CONTINUOUS_VESTING_TYPE",
    "DELAYED_VESTING_TYPE",
    "Account",
    "Balance",
    "BaseAccount",
    "BaseAccountEntry",
    "BaseVestingAccount",
    "ContinuousVestingAccount",
    "DelayedVestingAccount",
    "GenesisDocument",
    "GenesisMutator",
    "JsonMutator",
    "OtherAccount",
    "VestingAccount",
    "genesis_file",
    "set_consensus_max_gas",
    "set_gov_voting_period",
    "set_path",
]
