"""OpenTelemetry tracing with Starlette middleware."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GrpcOTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpOTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from content_search_server.config import OtlpExportConfig
from content_search_server.observability.context import (
    generate_span_id,
    generate_trace_id,
    set_trace_context,
    update_span_id,
)
from content_search_server.observability.metrics import ERROR_COUNT, REQUEST_COUNT, REQUEST_LATENCY


if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.trace import Span, Tracer
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}


def init_tracing(
    service_name: str = "content_search",
    resource_attributes: dict[str, str] | None = None,
) -> TracerProvider:
    """Initialize OpenTelemetry tracing."""
    attributes = {"service.name": service_name, **(resource_attributes or {})}
    provider = TracerProvider(resource=Resource.create(attributes))
    trace.set_tracer_provider(provider)
    _tracer_holder["tracer"] = trace.get_tracer(__name__)
    logger.info("Tracing initialized for service: %s", service_name)
    return provider


def configure_trace_exporter(config: OtlpExportConfig | None, provider: TracerProvider | None = None) -> None:
    """Attach an OTLP span exporter when export is enabled."""
    if not config or not config.enabled:
        return

    active_provider = provider or trace.get_tracer_provider()
    if not isinstance(active_provider, TracerProvider):
        active_provider = init_tracing()

    endpoint = config.signal_endpoint("traces")
    try:
        if config.protocol == "grpc":
            exporter = GrpcOTLPSpanExporter(endpoint=endpoint, timeout=config.timeout_seconds, insecure=config.insecure)
        else:
            exporter = HttpOTLPSpanExporter(endpoint=endpoint, timeout=config.timeout_seconds)
    except Exception as exc:
        logger.error("Failed to configure OTLP exporter: %s", exc, exc_info=True)
        ERROR_COUNT.labels(error_type=type(exc).__name__, component="tracing").inc()
        return

    active_provider.add_span_processor(BatchSpanProcessor(exporter))
    logger.info("OTLP trace export enabled (%s) to %s", config.protocol, endpoint)


def get_tracer() -> Tracer:
    """Get the configured tracer."""
    if _tracer_holder["tracer"] is None:
        init_tracing()
    return _tracer_holder["tracer"]  # type: ignore[return-value]


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Start a span and point the logging context at it."""
    with get_tracer().start_as_current_span(name, kind=kind, attributes=attributes) as span:
        update_span_id(format(span.get_span_context().span_id, "016x"))
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise


def _route_template(request: Request) -> str:
    """Path template of the matched route, keeping metric labels low-cardinality."""
    endpoint = request.scope.get("endpoint")
    if endpoint is None:
        return "unmatched"
    for route in getattr(request.app, "routes", ()):
        if getattr(route, "endpoint", None) is endpoint:
            return route.path
    return request.url.path


class TraceContextMiddleware:
    """ASGI middleware that adopts ``X-Trace-Id`` or starts a new trace."""

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        trace_id = headers.get(b"x-trace-id", b"").decode() or generate_trace_id()
        set_trace_context(trace_id, generate_span_id(), route=scope.get("path", ""))
        await self.app(scope, receive, send)


async def trace_request(request: Request, call_next: Any) -> Response:
    """HTTP middleware: one server span plus request count/latency per route."""
    attributes = {
        "http.method": request.method,
        "http.url": str(request.url),
        "http.target": request.url.path,
    }
    start = time.perf_counter()
    with create_span("http.request", kind=SpanKind.SERVER, attributes=attributes) as span:
        try:
            response: Response = await call_next(request)
        except Exception:
            REQUEST_COUNT.labels(route=_route_template(request), status="500").inc()
            raise
        route = _route_template(request)
        span.set_attribute("http.route", route)
        span.set_attribute("http.status_code", response.status_code)
        if response.status_code >= 500:
            span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
        REQUEST_COUNT.labels(route=route, status=str(response.status_code)).inc()
        REQUEST_LATENCY.labels(route=route).observe(time.perf_counter() - start)
        return response
