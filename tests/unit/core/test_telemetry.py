"""
Unit tests for the tracing provider and request middleware.
"""

import asyncio
import threading
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi import FastAPI, HTTPException
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from starlette.requests import Request

from scaffold.core.exceptions import TracingSetupError
from scaffold.core.telemetry import (
    TelemetryService,
    TracingMiddleware,
    normalize_otlp_endpoint,
)


class TestNormalizeEndpoint:
    @pytest.mark.parametrize(
        "endpoint,expected",
        [
            ("tempo:4318", "http://tempo:4318/v1/traces"),
            ("http://collector:4318", "http://collector:4318/v1/traces"),
            ("http://collector:4318/", "http://collector:4318/v1/traces"),
            ("https://otel.example.com/custom/path", "https://otel.example.com/custom/path"),
        ],
    )
    def test_normalize(self, endpoint, expected):
        assert normalize_otlp_endpoint(endpoint) == expected

    def test_empty_endpoint_rejected(self):
        with pytest.raises(ValueError):
            normalize_otlp_endpoint("")


class TestTelemetryService:
    def test_create_with_injected_exporter(self, settings):
        exporter = InMemorySpanExporter()
        telemetry = TelemetryService.create(settings, exporter=exporter)

        with telemetry.tracer.start_as_current_span("work"):
            pass
        telemetry.shutdown()

        spans = exporter.get_finished_spans()
        assert [span.name for span in spans] == ["work"]
        resource = spans[0].resource.attributes
        assert resource["service.name"] == settings.OTEL_SERVICE_NAME
        assert resource["deployment.environment"] == "test"

    def test_create_fails_on_bad_endpoint(self, settings):
        bad = settings.model_copy(update={"OTEL_EXPORTER_OTLP_ENDPOINT": ""})

        with pytest.raises(TracingSetupError):
            TelemetryService.create(bad)

    def test_shutdown_flushes_then_shuts_down(self):
        provider = MagicMock()
        provider.force_flush.return_value = True
        telemetry = TelemetryService(tracer=MagicMock(), tracer_provider=provider)

        telemetry.shutdown()

        assert [c[0] for c in provider.method_calls] == ["force_flush", "shutdown"]

    def test_shutdown_runs_even_when_flush_fails(self):
        provider = MagicMock()
        provider.force_flush.side_effect = RuntimeError("collector down")
        telemetry = TelemetryService(tracer=MagicMock(), tracer_provider=provider)

        with pytest.raises(TracingSetupError) as exc_info:
            telemetry.shutdown()

        provider.shutdown.assert_called_once()
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_shutdown_reports_flush_timeout(self):
        provider = MagicMock()
        provider.force_flush.return_value = False
        telemetry = TelemetryService(tracer=MagicMock(), tracer_provider=provider)

        with pytest.raises(TracingSetupError):
            telemetry.shutdown()
        provider.shutdown.assert_called_once()

    def test_shutdown_is_idempotent(self):
        provider = MagicMock()
        provider.force_flush.return_value = True
        telemetry = TelemetryService(tracer=MagicMock(), tracer_provider=provider)

        telemetry.shutdown()
        telemetry.shutdown()

        provider.shutdown.assert_called_once()

    @pytest.mark.asyncio
    async def test_shutdown_within_budget(self):
        provider = MagicMock()
        provider.force_flush.return_value = True
        telemetry = TelemetryService(tracer=MagicMock(), tracer_provider=provider)

        assert await telemetry.shutdown_within(1.0) is True
        provider.force_flush.assert_called_once_with(1000)
        provider.shutdown.assert_called_once()

    @pytest.mark.asyncio
    async def test_shutdown_within_abandons_slow_provider(self):
        release = threading.Event()
        provider = MagicMock()
        provider.force_flush.return_value = True
        provider.shutdown.side_effect = lambda: release.wait(5)
        telemetry = TelemetryService(tracer=MagicMock(), tracer_provider=provider)

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            assert await telemetry.shutdown_within(0.1) is False
            assert loop.time() - started < 1.0
        finally:
            release.set()

    @pytest.mark.asyncio
    async def test_shutdown_within_reports_flush_failure(self):
        provider = MagicMock()
        provider.force_flush.side_effect = RuntimeError("collector down")
        telemetry = TelemetryService(tracer=MagicMock(), tracer_provider=provider)

        with pytest.raises(TracingSetupError):
            await telemetry.shutdown_within(1.0)
        provider.shutdown.assert_called_once()


class TestTracingMiddleware:
    @pytest.fixture
    def app(self, telemetry):
        app = FastAPI()
        app.add_middleware(TracingMiddleware, telemetry=telemetry)

        @app.get("/ok")
        async def ok():
            return {"ok": True}

        @app.post("/rejected")
        async def rejected(request: Request):
            request.state.error = ValueError("bad payload")
            raise HTTPException(status_code=400, detail="bad payload")

        @app.get("/boom")
        async def boom():
            raise RuntimeError("boom")

        return app

    @pytest.mark.asyncio
    async def test_span_per_request(self, app, span_exporter):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.get("/ok")

        assert response.status_code == 200
        spans = span_exporter.get_finished_spans()
        assert len(spans) == 1
        span = spans[0]
        assert span.name == "GET /ok"
        assert span.attributes["http.method"] == "GET"
        assert span.attributes["http.target"] == "/ok"
        assert span.attributes["http.status_code"] == 200

    @pytest.mark.asyncio
    async def test_handler_error_is_recorded(self, app, span_exporter):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.post("/rejected")

        assert response.status_code == 400
        span = span_exporter.get_finished_spans()[0]
        assert span.attributes["http.status_code"] == 400
        assert any(event.name == "exception" for event in span.events)

    @pytest.mark.asyncio
    async def test_span_ends_when_handler_raises(self, app, span_exporter):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app, raise_app_exceptions=False),
            base_url="http://test",
        ) as client:
            response = await client.get("/boom")

        assert response.status_code == 500
        spans = span_exporter.get_finished_spans()
        assert len(spans) == 1
        assert spans[0].name == "GET /boom"
        assert spans[0].status.status_code == StatusCode.ERROR
