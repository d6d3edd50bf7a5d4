"""Reusable base models for the harness."""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict


class HarnessModel(BaseModel):
    """
    An immutable model for values the harness owns.

    Unknown fields are rejected so typos in configuration files fail loudly.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        validate_default=True,
    )

    def copy(self: Self, **kwargs: Any) -> Self:
        """Create a copy of the model with the updated fields that are validated."""
        return self.__class__(**(self.model_dump(exclude_unset=True) | kwargs))


class ChainJsonModel(BaseModel):
    """
    An immutable, lenient model for JSON printed by the node binary.

    The binary encodes 64-bit integers as strings and adds fields between releases,
    so values are coerced and unknown fields are ignored.
    """

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )
