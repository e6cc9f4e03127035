"""
Status endpoint.

Reports whether the repository handles are up. Each dependency is pinged
with the same bound used when it was first connected; a ping that does not
answer in time counts as down.
"""

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from ..server import Server

logger = structlog.get_logger()


async def _probe(name: str, ping: Awaitable[bool], timeout: float) -> bool:
    try:
        return bool(await asyncio.wait_for(ping, timeout=timeout))
    except asyncio.TimeoutError:
        logger.warning("Status ping timed out", dependency=name, timeout=timeout)
        return False


class HealthHandler:
    def __init__(self, server: "Server"):
        self.server = server

    async def status(self, request: Request) -> JSONResponse:
        settings = self.server.settings
        repository = self.server.repository

        database_up = repository.database.is_initialized() and await _probe(
            "database", repository.database.ping(), settings.DATABASE_CONNECT_TIMEOUT
        )
        cache_up = await _probe("cache", repository.cache.ping(), settings.REDIS_PING_TIMEOUT)

        return JSONResponse(
            {
                "status": "ok" if database_up and cache_up else "degraded",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "environment": settings.ENVIRONMENT,
                "database": database_up,
                "cache": cache_up,
            }
        )
