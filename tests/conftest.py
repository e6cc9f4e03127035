"""
Main pytest configuration for the unit test suite.

Fixtures for settings, loggers, in-memory tracing and fake connectors.
No external services are required.
"""

import os
from typing import List

import pytest
import structlog
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"

from scaffold.core.config import Settings
from scaffold.core.telemetry import TelemetryService


@pytest.fixture
def settings() -> Settings:
    """Provide test settings with no simulated delay."""
    return Settings(
        ENVIRONMENT="test",
        SERVER_PORT=0,
        SHUTDOWN_GRACE_PERIOD=1.0,
        STUDENT_CREATE_DELAY=0.0,
        REDIS_PING_TIMEOUT=0.5,
        DATABASE_CONNECT_TIMEOUT=0.5,
    )


@pytest.fixture
def logger():
    return structlog.get_logger("tests")


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def telemetry(span_exporter) -> TelemetryService:
    """Telemetry handle exporting synchronously into memory."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return TelemetryService(tracer=provider.get_tracer("tests"), tracer_provider=provider)


class FakeConnector:
    """Connector double that counts close() calls."""

    def __init__(self, name: str, close_error: Exception = None):
        self.name = name
        self.close_calls = 0
        self.close_error = close_error
        self.initialized = True

    async def close(self) -> None:
        self.close_calls += 1
        self.initialized = False
        if self.close_error is not None:
            raise self.close_error

    def is_initialized(self) -> bool:
        return self.initialized

    async def ping(self) -> bool:
        return self.initialized


@pytest.fixture
def fake_connector_factory():
    """Build connector factories that record what they created."""
    created: List[FakeConnector] = []

    def factory(name: str, error: Exception = None, close_error: Exception = None):
        async def connect(settings, logger, telemetry=None):
            if error is not None:
                raise error
            connector = FakeConnector(name, close_error=close_error)
            created.append(connector)
            return connector

        return connect

    factory.created = created
    return factory
