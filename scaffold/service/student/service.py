"""
Student service contract.
"""

from typing import Protocol

from ...models import Student


class StudentService(Protocol):
    """Business operations on students."""

    async def create(self, payload: Student) -> Student:
        ...
