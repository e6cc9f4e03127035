"""
Service registry.

Groups one service per domain entity so handlers depend on a single object.
"""

from dataclasses import dataclass

from ..core.config import Settings
from ..core.telemetry import TelemetryService
from ..repository import Repository
from .student import StudentService, StudentServiceImpl


@dataclass
class Services:
    student_service: StudentService

    @classmethod
    def create(
        cls, settings: Settings, telemetry: TelemetryService, repository: Repository
    ) -> "Services":
        return cls(
            student_service=StudentServiceImpl(
                tracer=telemetry.tracer,
                repository=repository,
                work_delay=settings.STUDENT_CREATE_DELAY,
            )
        )
