"""
Router: builds the FastAPI application and registers every route.
"""

from typing import TYPE_CHECKING

from fastapi import FastAPI

from ...core.telemetry import TracingMiddleware
from ..handler import Handlers
from ..middleware import RequestReadTimeout, RequestTimeoutMiddleware, request_read_timeout_handler
from .student import register_student_routes
from .system import register_system_routes

if TYPE_CHECKING:
    from ..server import Server


def new_router(server: "Server", handlers: Handlers) -> FastAPI:
    """
    Create the ASGI application for the server.

    Middleware order (outermost first): tracing, request timeouts.
    """
    settings = server.settings
    app = FastAPI(title="Student Service", version="0.1.0")

    app.add_exception_handler(RequestReadTimeout, request_read_timeout_handler)

    # Last added runs first
    app.add_middleware(
        RequestTimeoutMiddleware,
        read_timeout=settings.SERVER_READ_TIMEOUT,
        write_timeout=settings.SERVER_WRITE_TIMEOUT,
    )
    app.add_middleware(TracingMiddleware, telemetry=server.telemetry)

    register_system_routes(app, handlers)
    register_student_routes(app, handlers)

    return app


__all__ = ["new_router"]
