from fastapi import FastAPI, status

from ..handler import Handlers


def register_student_routes(app: FastAPI, handlers: Handlers) -> None:
    app.add_api_route(
        "/students",
        handlers.student_handler.create,
        methods=["POST"],
        status_code=status.HTTP_201_CREATED,
        tags=["students"],
    )
