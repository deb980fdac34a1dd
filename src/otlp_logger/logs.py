"""Log provider factory.

Builds a LoggerProvider exporting log records over OTLP through a
BatchLogRecordProcessor.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import (
    OTLPLogExporter as OTLPHttpLogExporter,
)
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource

from otlp_logger.config import OtlpProtocol, http_signal_endpoint
from otlp_logger.errors import ExportSetupError

if TYPE_CHECKING:
    from opentelemetry.sdk._logs.export import LogExporter

logger = logging.getLogger(__name__)

SIGNAL = "logs"


def build_log_exporter(endpoint: str, protocol: OtlpProtocol = "grpc") -> LogExporter:
    """Create the OTLP log exporter for ``endpoint``."""
    if protocol == "grpc":
        return OTLPLogExporter(endpoint=endpoint)
    return OTLPHttpLogExporter(endpoint=http_signal_endpoint(endpoint, "/v1/logs"))


def build_logger_provider(
    endpoint: str,
    resource: Resource,
    protocol: OtlpProtocol = "grpc",
) -> LoggerProvider:
    """Build a LoggerProvider bound to ``endpoint`` and ``resource``.

    Raises:
        ExportSetupError: If the exporter or provider cannot be constructed.
    """
    try:
        exporter = build_log_exporter(endpoint, protocol)
        provider = LoggerProvider(resource=resource, shutdown_on_exit=False)
        provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
    except Exception as e:
        raise ExportSetupError(SIGNAL, e) from e

    logger.debug(
        "LoggerProvider built",
        extra={"endpoint": endpoint, "protocol": protocol},
    )
    return provider


__all__ = ["build_log_exporter", "build_logger_provider"]
