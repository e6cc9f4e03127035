"""
Student service implementation.

Pass-through with observability: every operation runs inside a span and
records its total elapsed time. No caching or retry decisions here.
"""

import asyncio
import time
from typing import Optional
from uuid import uuid4

from opentelemetry import trace

from ...models import Student
from ...repository import Repository


class StudentServiceImpl:
    """Default StudentService."""

    def __init__(
        self,
        tracer: trace.Tracer,
        repository: Optional[Repository] = None,
        work_delay: float = 0.0,
    ):
        self.tracer = tracer
        self.repository = repository
        self.work_delay = work_delay

    async def create(self, payload: Student) -> Student:
        """
        Create a student with a fresh server-side identifier.

        The simulated work honours cancellation of the calling request.
        """
        with self.tracer.start_as_current_span("student.create") as span:
            start = time.perf_counter()
            try:
                if self.work_delay:
                    await asyncio.sleep(self.work_delay)

                return Student(id=uuid4(), name=payload.name, roll=payload.roll)
            finally:
                span.set_attribute("total", f"{time.perf_counter() - start:.6f}s")
