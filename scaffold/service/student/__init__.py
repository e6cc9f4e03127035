from .service import StudentService
from .student import StudentServiceImpl

__all__ = ["StudentService", "StudentServiceImpl"]
