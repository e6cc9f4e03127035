"""
Query tracers for the PostgreSQL connector.

A single pair of SQLAlchemy cursor events feeds one ``QueryTracer``.
When more than one instrumentation concern is active they are combined
in a ``CompositeQueryTracer`` that forwards every callback to each
sub-tracer in registration order.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from opentelemetry import trace
from opentelemetry.semconv.trace import SpanAttributes
from opentelemetry.trace import SpanKind, Status, StatusCode
from prometheus_client import Counter, Histogram
from sqlalchemy import event
from sqlalchemy.engine import Engine

SLOW_QUERY_THRESHOLD_MS = 1000.0

_EVENT_ATTR = "_scaffold_query_event"

db_queries_total = Counter(
    "scaffold_db_queries_total",
    "Total number of database queries",
    ["query_type", "status"],
)
db_query_duration = Histogram(
    "scaffold_db_query_duration_seconds",
    "Time spent executing database queries",
    ["query_type"],
)


@dataclass
class QueryEvent:
    """State shared by all tracers for one query execution."""

    statement: str
    parameters: Any = None
    executemany: bool = False
    started_at: float = field(default_factory=time.perf_counter)
    duration_ms: Optional[float] = None
    rowcount: Optional[int] = None
    error: Optional[BaseException] = None
    state: Dict[str, Any] = field(default_factory=dict)

    @property
    def query_type(self) -> str:
        return parse_query_type(self.statement)


def parse_query_type(statement: str) -> str:
    """First keyword of the statement, lower-cased (``select``, ``insert``...)."""
    parts = statement.strip().split(None, 1)
    return parts[0].lower() if parts else "unknown"


class QueryTracer:
    """Receives query start/end callbacks. Default implementation does nothing."""

    def trace_query_start(self, query: QueryEvent) -> None:
        return None

    def trace_query_end(self, query: QueryEvent) -> None:
        return None


class SpanQueryTracer(QueryTracer):
    """Opens one client span per query on the given tracer."""

    def __init__(self, tracer: trace.Tracer):
        self.tracer = tracer

    def trace_query_start(self, query: QueryEvent) -> None:
        span = self.tracer.start_span(
            f"db.{query.query_type}",
            kind=SpanKind.CLIENT,
            attributes={
                SpanAttributes.DB_SYSTEM: "postgresql",
                SpanAttributes.DB_STATEMENT: query.statement,
                "db.query_type": query.query_type,
            },
        )
        query.state["span"] = span

    def trace_query_end(self, query: QueryEvent) -> None:
        span = query.state.pop("span", None)
        if span is None:
            return

        if query.duration_ms is not None:
            span.set_attribute("db.duration_ms", query.duration_ms)
        if query.rowcount is not None and query.rowcount >= 0:
            span.set_attribute("db.row_count", query.rowcount)
        if query.error is not None:
            span.record_exception(query.error)
            span.set_status(Status(StatusCode.ERROR, str(query.error)))
        span.end()


class MetricsQueryTracer(QueryTracer):
    """Counts queries and observes their duration in Prometheus."""

    def trace_query_end(self, query: QueryEvent) -> None:
        status = "error" if query.error is not None else "ok"
        db_queries_total.labels(query_type=query.query_type, status=status).inc()
        if query.duration_ms is not None:
            db_query_duration.labels(query_type=query.query_type).observe(
                query.duration_ms / 1000.0
            )


class LoggingQueryTracer(QueryTracer):
    """Verbose per-query logging for local development."""

    def __init__(self, logger, slow_query_threshold_ms: float = SLOW_QUERY_THRESHOLD_MS):
        self.logger = logger
        self.slow_query_threshold_ms = slow_query_threshold_ms

    def trace_query_start(self, query: QueryEvent) -> None:
        self.logger.debug(
            "Database query started",
            sql=query.statement,
            args=str(query.parameters),
        )

    def trace_query_end(self, query: QueryEvent) -> None:
        if query.error is not None:
            self.logger.error(
                "Database query failed",
                sql=query.statement,
                duration_ms=query.duration_ms,
                error=str(query.error),
            )
            return

        if query.duration_ms is not None and query.duration_ms > self.slow_query_threshold_ms:
            self.logger.warning(
                "Slow query detected",
                sql=query.statement,
                duration_ms=query.duration_ms,
            )
            return

        self.logger.info(
            "Query",
            sql=query.statement,
            duration_ms=query.duration_ms,
            row_count=query.rowcount,
        )


class CompositeQueryTracer(QueryTracer):
    """Fans every callback out to each sub-tracer, in registration order."""

    def __init__(self, tracers: Iterable[QueryTracer]):
        self.tracers: List[QueryTracer] = list(tracers)

    def trace_query_start(self, query: QueryEvent) -> None:
        for tracer in self.tracers:
            tracer.trace_query_start(query)

    def trace_query_end(self, query: QueryEvent) -> None:
        for tracer in self.tracers:
            tracer.trace_query_end(query)


def combine_tracers(tracers: Iterable[QueryTracer]) -> Optional[QueryTracer]:
    """None for no tracers, the tracer itself for one, a composite otherwise."""
    tracers = list(tracers)
    if not tracers:
        return None
    if len(tracers) == 1:
        return tracers[0]
    return CompositeQueryTracer(tracers)


def attach_query_tracer(engine: Engine, tracer: QueryTracer) -> None:
    """
    Register cursor events on a (sync) engine that drive ``tracer``.

    Args:
        engine: Engine to instrument; use ``AsyncEngine.sync_engine`` for async engines
        tracer: Tracer receiving start/end callbacks
    """

    def _finish(context, rowcount: Optional[int] = None, error: Optional[BaseException] = None):
        query = getattr(context, _EVENT_ATTR, None)
        if query is None:
            return
        delattr(context, _EVENT_ATTR)

        query.duration_ms = (time.perf_counter() - query.started_at) * 1000
        query.rowcount = rowcount
        query.error = error
        tracer.trace_query_end(query)

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        query = QueryEvent(
            statement=statement, parameters=parameters, executemany=executemany
        )
        setattr(context, _EVENT_ATTR, query)
        tracer.trace_query_start(query)

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        _finish(context, rowcount=getattr(cursor, "rowcount", None))

    @event.listens_for(engine, "handle_error")
    def handle_error(exception_context):
        context = exception_context.execution_context
        if context is not None:
            _finish(context, error=exception_context.original_exception)
