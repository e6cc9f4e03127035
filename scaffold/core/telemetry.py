"""
Student Service OpenTelemetry Setup

Distributed tracing for the scaffold.

This module provides:
- Resource detection with service name and deployment environment
- Tracer provider with an always-on sampler and batched OTLP/HTTP export
- Request-scoped tracing middleware for FastAPI/Starlette
- Flush-then-shutdown teardown

The provider is never registered as the process-wide default. The
``TelemetryService`` handle is passed explicitly to every component that
starts spans.
"""

import asyncio
import threading
from typing import Optional
from urllib.parse import urlparse

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.semconv.resource import ResourceAttributes
from opentelemetry.trace import SpanKind, Status, StatusCode
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .config import Settings
from .exceptions import TracingSetupError

logger = structlog.get_logger()

OTLP_TRACES_PATH = "/v1/traces"


def normalize_otlp_endpoint(endpoint: str) -> str:
    """
    Turn a collector address into a full OTLP/HTTP traces URL.

    ``tempo:4318`` becomes ``http://tempo:4318/v1/traces``; URLs that
    already carry a scheme and path are returned unchanged.
    """
    if not endpoint:
        raise ValueError("OTLP endpoint must not be empty")

    if "://" not in endpoint:
        endpoint = f"http://{endpoint}"

    parsed = urlparse(endpoint)
    if not parsed.hostname:
        raise ValueError(f"Invalid OTLP endpoint: {endpoint}")

    if parsed.path in ("", "/"):
        endpoint = endpoint.rstrip("/") + OTLP_TRACES_PATH
    return endpoint


class TelemetryService:
    """
    Tracing handle owned by the server.

    Wraps a tracer and the provider it came from. Repository and service
    layers only use ``tracer``; the server calls ``shutdown()`` on teardown.
    """

    def __init__(self, tracer: trace.Tracer, tracer_provider: TracerProvider):
        self.tracer = tracer
        self._tracer_provider = tracer_provider
        self._shutdown = False

    @classmethod
    def create(
        cls, settings: Settings, exporter: Optional[SpanExporter] = None
    ) -> "TelemetryService":
        """
        Build the tracer provider for the configured service.

        Args:
            settings: Application settings
            exporter: Span exporter override; defaults to OTLP/HTTP

        Returns:
            Configured TelemetryService

        Raises:
            TracingSetupError: If the resource or exporter cannot be built
        """
        try:
            resource = Resource.create(
                {
                    ResourceAttributes.SERVICE_NAME: settings.OTEL_SERVICE_NAME,
                    ResourceAttributes.DEPLOYMENT_ENVIRONMENT: settings.ENVIRONMENT,
                }
            )
        except Exception as e:
            raise TracingSetupError("Failed to create tracing resource", e)

        if exporter is None:
            try:
                endpoint = normalize_otlp_endpoint(settings.OTEL_EXPORTER_OTLP_ENDPOINT)
                exporter = OTLPSpanExporter(endpoint=endpoint)
            except Exception as e:
                raise TracingSetupError("Failed to create OTLP span exporter", e)

        tracer_provider = TracerProvider(
            resource=resource, sampler=ALWAYS_ON, shutdown_on_exit=False
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

        logger.info(
            "Distributed tracing initialized",
            service_name=settings.OTEL_SERVICE_NAME,
            endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT,
        )

        return cls(
            tracer=tracer_provider.get_tracer(settings.OTEL_SERVICE_NAME),
            tracer_provider=tracer_provider,
        )

    def shutdown(self, timeout_millis: int = 30000) -> None:
        """
        Flush pending spans, then shut the provider down.

        Both steps always run. A failed flush is reported after the
        provider has been shut down.

        Raises:
            TracingSetupError: If the flush failed or timed out
        """
        if self._shutdown:
            return

        flush_error: Optional[BaseException] = None
        flushed = False
        try:
            flushed = self._tracer_provider.force_flush(timeout_millis)
        except Exception as e:
            flush_error = e

        self._tracer_provider.shutdown()
        self._shutdown = True
        logger.info("OpenTelemetry tracer provider shut down", flushed=flushed)

        if flush_error is not None or not flushed:
            raise TracingSetupError("Failed to flush pending spans", flush_error)

    async def shutdown_within(self, timeout: float) -> bool:
        """
        Run ``shutdown()`` on a daemon thread and wait at most ``timeout`` seconds.

        The flush gets the same budget. The provider's own shutdown has no
        bound, so when the budget runs out the thread is left to finish on
        its own; being a daemon it never holds up interpreter exit.

        Returns:
            True if shutdown finished in time, False if it was abandoned

        Raises:
            TracingSetupError: If shutdown failed within the budget
        """
        loop = asyncio.get_running_loop()
        finished = loop.create_future()

        def _resolve(error: Optional[BaseException]) -> None:
            if finished.done():
                return
            if error is None:
                finished.set_result(None)
            else:
                finished.set_exception(error)

        def _run() -> None:
            error = None
            try:
                self.shutdown(max(int(timeout * 1000), 0))
            except Exception as e:
                error = e
            try:
                loop.call_soon_threadsafe(_resolve, error)
            except RuntimeError:
                # event loop already closed
                pass

        threading.Thread(target=_run, name="tracing-shutdown", daemon=True).start()

        try:
            await asyncio.wait_for(finished, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Tracing shutdown abandoned after timeout", timeout=timeout)
            return False
        return True


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Opens one server span per inbound request.

    The span is named ``"<method> <path>"``, carries the standard HTTP
    attributes and the response status code, and records the error left by
    the handler pipeline in ``request.state.error``. Unhandled exceptions
    are recorded and re-raised; the span ends on every exit path.
    """

    def __init__(self, app: ASGIApp, telemetry: TelemetryService):
        super().__init__(app)
        self.telemetry = telemetry

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        url = request.url
        with self.telemetry.tracer.start_as_current_span(
            f"{request.method} {url.path}",
            kind=SpanKind.SERVER,
            attributes={
                "http.method": request.method,
                "http.url": str(url),
                "http.scheme": url.scheme,
                "http.target": url.path,
                "http.host": request.headers.get("host", ""),
            },
        ) as span:
            response = await call_next(request)

            span.set_attribute("http.status_code", response.status_code)

            error = getattr(request.state, "error", None)
            if error is not None:
                span.record_exception(error)
            if response.status_code >= 500:
                span.set_status(Status(StatusCode.ERROR))

            return response
