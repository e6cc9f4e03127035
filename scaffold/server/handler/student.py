"""
Student endpoints.
"""

from fastapi import status
from starlette.requests import Request

from ...models import Student
from ...service import Services
from .base import handle


class StudentHandler:
    def __init__(self, services: Services):
        self.services = services
        self.create = handle(self._create, status.HTTP_201_CREATED, Student)

    async def _create(self, request: Request, payload: Student) -> Student:
        return await self.services.student_service.create(payload)
