"""
Handler layer: adapts HTTP requests to typed service calls.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .base import handle
from .health import HealthHandler
from .student import StudentHandler

if TYPE_CHECKING:
    from ..server import Server


@dataclass
class Handlers:
    health_handler: HealthHandler
    student_handler: StudentHandler

    @classmethod
    def create(cls, server: "Server") -> "Handlers":
        return cls(
            health_handler=HealthHandler(server),
            student_handler=StudentHandler(server.services),
        )


__all__ = ["Handlers", "HealthHandler", "StudentHandler", "handle"]
