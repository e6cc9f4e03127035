"""
Repository Aggregate

Owns the database driver and the cache handle. Either both are built or
neither is: if the cache fails after the database came up, the database
is closed before the error propagates.
"""

from typing import Awaitable, Callable, Optional

from ..core.config import Settings
from ..core.telemetry import TelemetryService
from .cache import RedisCache
from .database import DatabaseDriver, PostgresDatabase

DatabaseFactory = Callable[..., Awaitable[DatabaseDriver]]
CacheFactory = Callable[..., Awaitable[RedisCache]]


async def _connect_cache(settings: Settings, logger, telemetry: Optional[TelemetryService]):
    tracer = telemetry.tracer if telemetry is not None else None
    return await RedisCache.connect(settings, logger, tracer)


class Repository:
    """Database and cache handles shared by every request."""

    def __init__(self, database: DatabaseDriver, cache, logger):
        self.database = database
        self.cache = cache
        self.logger = logger

    @classmethod
    async def build(
        cls,
        settings: Settings,
        logger,
        telemetry: Optional[TelemetryService] = None,
        database_factory: DatabaseFactory = PostgresDatabase.connect,
        cache_factory: CacheFactory = _connect_cache,
    ) -> "Repository":
        """
        Connect the database, then the cache.

        Raises:
            DatabaseConnectionError: If the database cannot be reached
            CacheConnectionError: If the cache cannot be reached; the
                database has been closed by then
        """
        database = await database_factory(settings, logger, telemetry)

        try:
            cache = await cache_factory(settings, logger, telemetry)
        except Exception:
            logger.error("Cache setup failed, closing database connection")
            try:
                await database.close()
            except Exception as close_error:
                logger.warning("Error closing database after cache failure", error=str(close_error))
            raise

        logger.info("Repository initialized")
        return cls(database=database, cache=cache, logger=logger)

    async def close(self) -> None:
        """
        Close the cache, then the database.

        Both are attempted; the first failure is re-raised afterwards.
        """
        first_error: Optional[BaseException] = None

        for name, resource in (("cache", self.cache), ("database", self.database)):
            try:
                await resource.close()
            except Exception as e:
                self.logger.error("Failed to close repository resource", resource=name, error=str(e))
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error
