"""
User entity and input definitions
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class User:
    """A persisted user as exposed through the API."""

    id: int
    name: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        return cls(id=int(row["id"]), name=str(row["name"]))


@dataclass(frozen=True, slots=True)
class UserInput:
    """Input for creating a new user."""

    name: str
