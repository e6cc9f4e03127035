from fastapi import FastAPI

from ..handler import Handlers


def register_system_routes(app: FastAPI, handlers: Handlers) -> None:
    app.add_api_route(
        "/status",
        handlers.health_handler.status,
        methods=["GET"],
        tags=["system"],
    )
