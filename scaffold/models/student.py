"""
Student Domain Entity

Created transiently per request. Identifiers are generated server-side.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from ..core.exceptions import InvalidPayloadError


@dataclass
class Student:
    """Student entity with its validity invariant."""

    id: Optional[UUID] = None
    name: str = ""
    roll: int = 0

    def validate(self) -> None:
        """
        Check the entity invariant: non-empty name and non-negative roll.

        Raises:
            InvalidPayloadError: If any field breaks the invariant
        """
        invalid = []
        if self.name == "":
            invalid.append("name")
        if self.roll < 0:
            invalid.append("roll")

        if invalid:
            raise InvalidPayloadError("missing fields", fields=invalid)
