"""
Service layer: business-logic facades per domain entity.
"""

from .services import Services
from .student import StudentService, StudentServiceImpl

__all__ = ["Services", "StudentService", "StudentServiceImpl"]
