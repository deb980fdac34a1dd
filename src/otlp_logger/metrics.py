"""Metrics provider factory.

Builds a MeterProvider exporting over OTLP through a
PeriodicExportingMetricReader. The configured MetricsAggregationConfig is
translated into the exporter's preferred aggregation per instrument class.
"""

from __future__ import annotations

import logging

from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as OTLPMetricExporterGrpc,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as OTLPMetricExporterHttp,
)
from opentelemetry.sdk.metrics import (
    Counter,
    Histogram,
    MeterProvider,
    ObservableCounter,
    ObservableGauge,
    ObservableUpDownCounter,
    UpDownCounter,
)
from opentelemetry.sdk.metrics import view as sdk_view
from opentelemetry.sdk.metrics.export import MetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from otlp_logger.config import (
    Base2ExponentialHistogram,
    DefaultAggregation,
    DropAggregation,
    ExplicitBucketHistogram,
    LastValueAggregation,
    MetricsAggregation,
    MetricsAggregationConfig,
    OtlpProtocol,
    SumAggregation,
    http_signal_endpoint,
)
from otlp_logger.errors import ExportSetupError

logger = logging.getLogger(__name__)

SIGNAL = "metrics"


def to_sdk_aggregation(aggregation: MetricsAggregation) -> sdk_view.Aggregation:
    """Translate a configured aggregation into the SDK aggregation."""
    if isinstance(aggregation, DefaultAggregation):
        return sdk_view.DefaultAggregation()
    if isinstance(aggregation, DropAggregation):
        return sdk_view.DropAggregation()
    if isinstance(aggregation, SumAggregation):
        return sdk_view.SumAggregation()
    if isinstance(aggregation, LastValueAggregation):
        return sdk_view.LastValueAggregation()
    if isinstance(aggregation, ExplicitBucketHistogram):
        return sdk_view.ExplicitBucketHistogramAggregation(
            boundaries=list(aggregation.boundaries),
            record_min_max=aggregation.record_min_max,
        )
    if isinstance(aggregation, Base2ExponentialHistogram):
        return sdk_view.ExponentialBucketHistogramAggregation(
            max_size=aggregation.max_size,
            max_scale=aggregation.max_scale,
        )
    raise TypeError(f"unsupported aggregation: {aggregation!r}")


def preferred_aggregation(
    config: MetricsAggregationConfig | None,
) -> dict[type, sdk_view.Aggregation]:
    """Map every SDK instrument class to its configured aggregation.

    Args:
        config: Aggregation selection, defaults when None.

    Returns:
        Mapping suitable for a MetricExporter's ``preferred_aggregation``.
    """
    config = config or MetricsAggregationConfig()
    counter = to_sdk_aggregation(config.counter)
    gauge = to_sdk_aggregation(config.gauge)
    histogram = to_sdk_aggregation(config.histogram)
    return {
        Counter: counter,
        UpDownCounter: counter,
        ObservableCounter: counter,
        ObservableUpDownCounter: counter,
        ObservableGauge: gauge,
        Histogram: histogram,
    }


def build_metric_exporter(
    endpoint: str,
    protocol: OtlpProtocol = "grpc",
    aggregation: MetricsAggregationConfig | None = None,
) -> MetricExporter:
    """Create the OTLP metric exporter for ``endpoint``.

    Args:
        endpoint: Collector endpoint.
        protocol: OTLP export protocol.
        aggregation: Aggregation selection per instrument kind.

    Returns:
        The metric exporter.
    """
    preferred = preferred_aggregation(aggregation)
    if protocol == "grpc":
        return OTLPMetricExporterGrpc(endpoint=endpoint, preferred_aggregation=preferred)
    return OTLPMetricExporterHttp(
        endpoint=http_signal_endpoint(endpoint, "/v1/metrics"),
        preferred_aggregation=preferred,
    )


def build_meter_provider(
    endpoint: str,
    resource: Resource,
    aggregation: MetricsAggregationConfig | None = None,
    protocol: OtlpProtocol = "grpc",
) -> MeterProvider:
    """Build a MeterProvider bound to ``endpoint`` and ``resource``.

    The export interval follows ``OTEL_METRIC_EXPORT_INTERVAL`` (60s default).

    Args:
        endpoint: Collector endpoint.
        resource: Shared resource describing the process.
        aggregation: Aggregation selection per instrument kind.
        protocol: OTLP export protocol.

    Returns:
        A MeterProvider owning the exporter and its periodic reader.

    Raises:
        ExportSetupError: If the exporter or provider cannot be constructed.
    """
    try:
        exporter = build_metric_exporter(endpoint, protocol, aggregation)
        reader = PeriodicExportingMetricReader(exporter)
        provider = MeterProvider(
            resource=resource,
            metric_readers=[reader],
            shutdown_on_exit=False,
        )
    except Exception as e:
        raise ExportSetupError(SIGNAL, e) from e

    logger.debug(
        "MeterProvider built",
        extra={"endpoint": endpoint, "protocol": protocol},
    )
    return provider


__all__ = [
    "build_meter_provider",
    "build_metric_exporter",
    "preferred_aggregation",
    "to_sdk_aggregation",
]
