"""Ready-made in-process genesis edits for ``GenesisMutator.modify_json``."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .. import json_path

JsonMutator = Callable[[dict[str, Any]], "dict[str, Any] | None"]
"""Edits a parsed genesis document in place, or returns a replacement."""


def set_path(path: str, value: Any) -> JsonMutator:
    """Set a dotted path, creating intermediate objects."""

    def mutate(doc: dict[str, Any]) -> None:
        json_path.set_path(doc, path, value)

    mutate.__name__ = f"set_path({path})"
    return mutate


def set_consensus_max_gas(max_gas: int) -> JsonMutator:
    """Set the per-block gas limit. ``-1`` means unlimited."""
    # Newer documents nest params under "consensus", older ones at the top level.

    def mutate(doc: dict[str, Any]) -> None:
        if json_path.has_path(doc, "consensus.params.block"):
            json_path.set_path(doc, "consensus.params.block.max_gas", str(max_gas))
        else:
            json_path.set_path(doc, "consensus_params.block.max_gas", str(max_gas))

    mutate.__name__ = f"set_consensus_max_gas({max_gas})"
    return mutate


def set_gov_voting_period(duration: str) -> JsonMutator:
    """Set the governance voting period, e.g. ``"20s"``."""

    def mutate(doc: dict[str, Any]) -> None:
        json_path.set_path(doc, "app_state.gov.params.voting_period", duration)

    mutate.__name__ = f"set_gov_voting_period({duration})"
    return mutate
