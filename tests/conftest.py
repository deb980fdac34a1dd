"""Shared test fixtures for otlp-logger.

Provides global-state isolation (OpenTelemetry providers, the installed
dispatch fabric, root logger handlers, structlog) and in-memory exporters
injected in place of the OTLP exporter builders.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
from opentelemetry.sdk._logs import export as logs_export
from opentelemetry.sdk.metrics.export import (
    MetricExporter,
    MetricExportResult,
    MetricsData,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otlp_logger.metrics import preferred_aggregation

# Renamed in newer SDK releases; both names refer to the SDK's in-memory exporter.
InMemoryLogExporter = getattr(logs_export, "InMemoryLogRecordExporter", None) or getattr(
    logs_export, "InMemoryLogExporter"
)


class CapturingMetricExporter(MetricExporter):
    """Metric exporter keeping every exported batch in memory."""

    def __init__(self, preferred_aggregation: dict[type, Any] | None = None) -> None:
        super().__init__(preferred_aggregation=preferred_aggregation)
        self.batches: list[MetricsData] = []

    def export(
        self,
        metrics_data: MetricsData,
        timeout_millis: float = 10_000,
        **kwargs: Any,
    ) -> MetricExportResult:
        self.batches.append(metrics_data)
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs: Any) -> None:
        pass

    def points(self, name: str) -> list[Any]:
        """Data points exported for the metric called ``name``."""
        found: list[Any] = []
        for batch in self.batches:
            for resource_metrics in batch.resource_metrics:
                for scope_metrics in resource_metrics.scope_metrics:
                    for metric in scope_metrics.metrics:
                        if metric.name == name:
                            found.extend(metric.data.data_points)
        return found


@dataclass
class InMemoryExporters:
    """Exporters handed to the provider factories during a test."""

    spans: InMemorySpanExporter
    metrics: CapturingMetricExporter
    logs: Any

    def log_bodies(self) -> list[Any]:
        return [entry.log_record.body for entry in self.logs.get_finished_logs()]


@pytest.fixture(autouse=True)
def reset_otel_global_state() -> Generator[None, None, None]:
    """Reset OpenTelemetry global state before and after each test.

    Tests that register global providers would otherwise fail later tests
    with "Overriding not allowed" warnings and leak providers between tests.

    Yields:
        None after resetting state.
    """
    from opentelemetry import metrics, trace
    from opentelemetry.metrics._internal import _ProxyMeterProvider
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.trace import ProxyTracerProvider

    trace._TRACER_PROVIDER_SET_ONCE._done = False
    trace._TRACER_PROVIDER = ProxyTracerProvider()

    metrics._internal._METER_PROVIDER_SET_ONCE._done = False
    metrics._internal._METER_PROVIDER = _ProxyMeterProvider()

    yield

    # SDK providers (not Proxy) avoid recursion in later tests
    trace._TRACER_PROVIDER_SET_ONCE._done = False
    trace._TRACER_PROVIDER = TracerProvider()

    metrics._internal._METER_PROVIDER_SET_ONCE._done = False
    metrics._internal._METER_PROVIDER = MeterProvider()


@pytest.fixture(autouse=True)
def reset_fabric() -> Generator[None, None, None]:
    """Detach any installed dispatch fabric and reset structlog after each test.

    Yields:
        None after test completes.
    """
    from otlp_logger.dispatch import _reset_fabric

    root = logging.getLogger()
    original_level = root.level

    yield

    _reset_fabric()
    root.setLevel(original_level)


@pytest.fixture
def in_memory_exporters() -> Generator[InMemoryExporters, None, None]:
    """Patch the OTLP exporter builders to return in-memory exporters.

    Yields:
        The exporters the providers will write to.
    """
    exporters = InMemoryExporters(
        spans=InMemorySpanExporter(),
        metrics=CapturingMetricExporter(),
        logs=InMemoryLogExporter(),
    )

    def metric_exporter(
        endpoint: str,
        protocol: str = "grpc",
        aggregation: Any = None,
    ) -> CapturingMetricExporter:
        exporters.metrics = CapturingMetricExporter(preferred_aggregation(aggregation))
        return exporters.metrics

    with (
        patch(
            "otlp_logger.trace.build_span_exporter",
            side_effect=lambda endpoint, protocol="grpc": exporters.spans,
        ),
        patch("otlp_logger.metrics.build_metric_exporter", side_effect=metric_exporter),
        patch(
            "otlp_logger.logs.build_log_exporter",
            side_effect=lambda endpoint, protocol="grpc": exporters.logs,
        ),
    ):
        yield exporters


@pytest.fixture
def empty_environ() -> dict[str, str]:
    """Environment mapping with no telemetry variables set."""
    return {}
