"""Prometheus golden-signal metrics mirrored to OpenTelemetry instruments."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter as GrpcOTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter as HttpOTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from content_search_server.config import OtlpExportConfig


if TYPE_CHECKING:
    from collections.abc import Generator


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}


def init_metrics(
    service_name: str = "content_search",
    resource_attributes: dict[str, str] | None = None,
    config: OtlpExportConfig | None = None,
) -> MeterProvider:
    """Create the OpenTelemetry meter provider (once), exporting over OTLP if enabled."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    readers: list[PeriodicExportingMetricReader] = []
    if config and config.enabled:
        endpoint = config.signal_endpoint("metrics")
        if config.protocol == "grpc":
            exporter = GrpcOTLPMetricExporter(
                endpoint=endpoint, timeout=config.timeout_seconds, insecure=config.insecure
            )
        else:
            exporter = HttpOTLPMetricExporter(endpoint=endpoint, timeout=config.timeout_seconds)
        readers.append(PeriodicExportingMetricReader(exporter))

    attributes = {"service.name": service_name, **(resource_attributes or {})}
    provider = MeterProvider(resource=Resource.create(attributes), metric_readers=readers)
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = otel_metrics.get_meter(__name__)
    return provider


def _get_meter():
    if _meter_holder.get("meter") is None:
        init_metrics()
    return _meter_holder["meter"]


class _BoundMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.observe(self._labels, value)


class MetricBridge:
    """Record into a Prometheus metric and the matching OTel instrument."""

    def __init__(self, prom_metric: Counter | Histogram, *, otel_name: str, description: str) -> None:
        self._prom_metric = prom_metric
        self._otel_name = otel_name
        self._description = description
        self._is_counter = isinstance(prom_metric, Counter)
        self._otel_instrument = None

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _instrument(self):
        if self._otel_instrument is None:
            meter = _get_meter()
            if self._is_counter:
                self._otel_instrument = meter.create_counter(self._otel_name, description=self._description)
            else:
                self._otel_instrument = meter.create_histogram(self._otel_name, description=self._description)
        return self._otel_instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._prom_metric.labels(**labels).inc(amount)
        self._instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).observe(value)
        self._instrument().record(value, labels)


REQUEST_COUNT = MetricBridge(
    Counter("content_search_requests_total", "Total HTTP requests", ["route", "status"]),
    otel_name="content_search_requests_total",
    description="Total HTTP requests",
)

REQUEST_LATENCY = MetricBridge(
    Histogram(
        "content_search_request_latency_seconds",
        "HTTP request latency in seconds",
        ["route"],
        buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    ),
    otel_name="content_search_request_latency_seconds",
    description="HTTP request latency in seconds",
)

STORAGE_LATENCY = MetricBridge(
    Histogram(
        "content_search_storage_latency_seconds",
        "Storage round-trip latency in seconds",
        ["operation"],
        buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
    ),
    otel_name="content_search_storage_latency_seconds",
    description="Storage round-trip latency in seconds",
)

ERROR_COUNT = MetricBridge(
    Counter("content_search_errors_total", "Total errors by kind", ["error_type", "component"]),
    otel_name="content_search_errors_total",
    description="Total errors by kind",
)

RECORDS_WRITTEN = MetricBridge(
    Counter("content_search_records_written_total", "Content records written", ["operation"]),
    otel_name="content_search_records_written_total",
    description="Content records written",
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Observe the wall time of the block into ``histogram``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Render the Prometheus exposition payload."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
