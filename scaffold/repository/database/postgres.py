"""
PostgreSQL Database Connector

Pooled async connection to PostgreSQL through SQLAlchemy and asyncpg:
- DSN assembled from discrete settings fields
- Query instrumentation (tracing, metrics, verbose local logging)
- Bounded liveness probe at connect time
"""

import asyncio
from typing import Optional
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ...core.config import Settings
from ...core.exceptions import DatabaseConnectionError
from ...core.telemetry import TelemetryService
from .tracers import (
    LoggingQueryTracer,
    MetricsQueryTracer,
    QueryTracer,
    SpanQueryTracer,
    attach_query_tracer,
    combine_tracers,
)


def join_host_port(host: str, port: int) -> str:
    """Join host and port into one network address, bracketing IPv6 hosts."""
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def build_dsn(settings: Settings) -> str:
    """Build the asyncpg connection URL from the discrete database settings."""
    return "postgresql+asyncpg://{user}:{password}@{address}/{name}?ssl={ssl}".format(
        user=quote_plus(settings.DATABASE_USER),
        password=quote_plus(settings.DATABASE_PASSWORD),
        address=join_host_port(settings.DATABASE_HOST, settings.DATABASE_PORT),
        name=settings.DATABASE_NAME,
        ssl=settings.DATABASE_SSL_MODE,
    )


def build_query_tracer(
    settings: Settings, logger, telemetry: Optional[TelemetryService]
) -> QueryTracer:
    """
    Pick the query tracers for this environment.

    Spans when a tracer is available, Prometheus metrics always, verbose
    query logging in the local environment. Order is registration order.
    """
    tracers = []
    if telemetry is not None and telemetry.tracer is not None:
        tracers.append(SpanQueryTracer(telemetry.tracer))
    tracers.append(MetricsQueryTracer())
    if settings.is_local:
        tracers.append(LoggingQueryTracer(logger))
    return combine_tracers(tracers)


async def _probe(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT 1"))
        if result.scalar() != 1:
            raise RuntimeError("Database probe returned unexpected result")


class PostgresDatabase:
    """Database driver backed by a pooled SQLAlchemy async engine."""

    def __init__(self, engine: AsyncEngine, logger, address: str = ""):
        self.engine: Optional[AsyncEngine] = engine
        self.logger = logger
        self.address = address

    @classmethod
    async def connect(
        cls,
        settings: Settings,
        logger,
        telemetry: Optional[TelemetryService] = None,
    ) -> "PostgresDatabase":
        """
        Create the connection pool and verify the database is reachable.

        Args:
            settings: Application settings
            logger: Bound logger for the connector
            telemetry: Tracing handle; enables per-query spans when present

        Returns:
            Connected PostgresDatabase

        Raises:
            DatabaseConnectionError: If the DSN cannot be parsed, the pool
                cannot be created or the probe fails
        """
        address = join_host_port(settings.DATABASE_HOST, settings.DATABASE_PORT)

        try:
            url = make_url(build_dsn(settings))
        except ArgumentError as e:
            raise DatabaseConnectionError(
                "failed to parse database pool config", address=address, original_error=e
            )

        try:
            engine = create_async_engine(
                url,
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        except Exception as e:
            raise DatabaseConnectionError(
                "failed to create database pool", address=address, original_error=e
            )

        attach_query_tracer(
            engine.sync_engine, build_query_tracer(settings, logger, telemetry)
        )

        try:
            await asyncio.wait_for(_probe(engine), timeout=settings.DATABASE_CONNECT_TIMEOUT)
        except Exception as e:
            await engine.dispose()
            raise DatabaseConnectionError(
                f"database connection failed: {e}", address=address, original_error=e
            )

        logger.info(
            "Database connection pool created",
            address=address,
            database=settings.DATABASE_NAME,
            pool_size=settings.DATABASE_POOL_SIZE,
        )
        return cls(engine, logger, address)

    def is_initialized(self) -> bool:
        return self.engine is not None

    async def ping(self) -> bool:
        if self.engine is None:
            return False
        try:
            await _probe(self.engine)
        except Exception as e:
            self.logger.warning("Database ping failed", error=str(e))
            return False
        return True

    async def close(self) -> None:
        """Dispose the pool. Never raises; a second call is a no-op."""
        if self.engine is None:
            return

        self.logger.info("closing database connection pool", address=self.address)
        try:
            await self.engine.dispose()
        except Exception as e:
            self.logger.warning("Error disposing database engine", error=str(e))
        finally:
            self.engine = None
