"""Trace provider factory.

Builds a TracerProvider exporting spans over OTLP through a
BatchSpanProcessor, so span export never blocks the emitting thread.
"""

from __future__ import annotations

import logging

from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as OTLPHttpSpanExporter,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from otlp_logger.config import OtlpProtocol, http_signal_endpoint
from otlp_logger.errors import ExportSetupError

logger = logging.getLogger(__name__)

SIGNAL = "traces"


def build_span_exporter(endpoint: str, protocol: OtlpProtocol = "grpc") -> SpanExporter:
    """Create the OTLP span exporter for ``endpoint``.

    Args:
        endpoint: Collector endpoint.
        protocol: ``grpc`` (port 4317) or ``http/protobuf`` (port 4318).

    Returns:
        The span exporter.
    """
    if protocol == "grpc":
        return OTLPSpanExporter(endpoint=endpoint)
    return OTLPHttpSpanExporter(endpoint=http_signal_endpoint(endpoint, "/v1/traces"))


def build_tracer_provider(
    endpoint: str,
    resource: Resource,
    protocol: OtlpProtocol = "grpc",
) -> TracerProvider:
    """Build a TracerProvider bound to ``endpoint`` and ``resource``.

    Args:
        endpoint: Collector endpoint.
        resource: Shared resource describing the process.
        protocol: OTLP export protocol.

    Returns:
        A TracerProvider owning the exporter and its batch processor.

    Raises:
        ExportSetupError: If the exporter or provider cannot be constructed.
    """
    try:
        exporter = build_span_exporter(endpoint, protocol)
        provider = TracerProvider(resource=resource, shutdown_on_exit=False)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception as e:
        raise ExportSetupError(SIGNAL, e) from e

    logger.debug(
        "TracerProvider built",
        extra={"endpoint": endpoint, "protocol": protocol},
    )
    return provider


__all__ = ["build_span_exporter", "build_tracer_provider"]
