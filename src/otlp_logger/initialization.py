"""Initialization entry points.

``init_with_config`` is the single composition path:

1. Merge the environment into unset configuration fields
2. Resolve one filter per sink
3. Console-only mode (no endpoint): compose the console layer only
4. Remote mode: validate the endpoint, assemble the resource, build the
   trace, metrics and log providers, compose all four layers and register
   the global tracer and meter providers
5. Install the fabric and hand ownership of the providers to a Logger

If any step fails, providers already built are released before the error
propagates, so no partial pipeline survives.

Example:
    >>> config = OtlpConfig.builder().service_name("svc-a").build()
    >>> with init_with_config(config) as telemetry:
    ...     structlog.get_logger().error("boom")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from opentelemetry import metrics as otel_metrics
from opentelemetry import trace as otel_trace

from otlp_logger.config import OtlpConfig, validate_endpoint
from otlp_logger.dispatch import (
    compose_remote,
    compose_stdout_only,
    install,
    is_installed,
)
from otlp_logger.errors import (
    AlreadyShutdownError,
    ConfigurationError,
    ExportSetupError,
    RegistryAlreadyInitializedError,
    TryInitError,
)
from otlp_logger.filter import SinkFilters, env_filter_directive, resolve_sink_filters
from otlp_logger.lifecycle import Logger, ProviderHandle, StdoutOnly, WithEndpoint
from otlp_logger.logs import build_logger_provider
from otlp_logger.metrics import build_meter_provider
from otlp_logger.resource import build_resource
from otlp_logger.trace import build_tracer_provider

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

logger = logging.getLogger(__name__)

_TRACER_NAME = "otlp_logger"


def init() -> Logger:
    """Initialize from the environment, logging fatally on failure.

    Falls back to console-only output when no endpoint is configured.

    Returns:
        The Logger owning the installed pipelines.

    Raises:
        TryInitError: After logging the failure at CRITICAL level.
    """
    try:
        return try_init()
    except TryInitError as e:
        logger.critical("Failed to initialize telemetry: %s (%s)", e, e.source)
        raise


def try_init() -> Logger:
    """Initialize with every field taken from the environment.

    Raises:
        TryInitError: If initialization fails.
    """
    return init_with_config(OtlpConfig())


def init_with_config(
    config: OtlpConfig,
    environ: Mapping[str, str] | None = None,
) -> Logger:
    """Initialize with an explicit configuration.

    Fields set on ``config`` are used as-is; unset fields are read from the
    environment.

    Args:
        config: Caller-supplied configuration.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        A Logger in WithEndpoint mode when an endpoint is configured,
        StdoutOnly otherwise.

    Raises:
        TryInitError: Wrapping the ConfigurationError, ExportSetupError or
            RegistryAlreadyInitializedError that stopped initialization.
    """
    try:
        merged = config.with_env_defaults(environ)
    except ConfigurationError as e:
        raise TryInitError("Failed to read configuration from environment", e) from e

    if is_installed():
        error = RegistryAlreadyInitializedError()
        raise TryInitError("Could not install telemetry dispatch fabric", error) from error

    filters = resolve_sink_filters(merged, env_filter_directive(environ))
    json_output = bool(merged.stdout_json)

    if merged.otlp_endpoint is None:
        _install(compose_stdout_only(filters, json_output), filters)
        _report_invalid_directives(filters)
        logger.info("Telemetry initialized", extra={"mode": "stdout_only"})
        return Logger(StdoutOnly())

    mode = _build_remote_mode(merged, merged.otlp_endpoint, environ)
    try:
        tracer = mode.traces.provider.get_tracer(_TRACER_NAME)  # type: ignore[attr-defined]
        _install(compose_remote(filters, mode, json_output), filters, tracer)
    except Exception:
        _discard(mode.handles)
        raise

    otel_trace.set_tracer_provider(mode.traces.provider)  # type: ignore[arg-type]
    otel_metrics.set_meter_provider(mode.metrics.provider)  # type: ignore[arg-type]

    _report_invalid_directives(filters)
    logger.info(
        "Telemetry initialized",
        extra={
            "mode": "with_endpoint",
            "endpoint": merged.otlp_endpoint,
            "protocol": merged.protocol,
        },
    )
    return Logger(mode)


def _build_remote_mode(
    config: OtlpConfig,
    endpoint: str,
    environ: Mapping[str, str] | None,
) -> WithEndpoint:
    try:
        endpoint = validate_endpoint(endpoint)
    except ConfigurationError as e:
        raise TryInitError("Invalid OTLP endpoint", e) from e

    resource = build_resource(config, environ)
    protocol = config.protocol
    built: list[ProviderHandle] = []
    try:
        built.append(
            ProviderHandle("traces", build_tracer_provider(endpoint, resource, protocol))
        )
        built.append(
            ProviderHandle(
                "metrics",
                build_meter_provider(
                    endpoint, resource, config.metrics_aggregation, protocol
                ),
            )
        )
        built.append(
            ProviderHandle("logs", build_logger_provider(endpoint, resource, protocol))
        )
    except ExportSetupError as e:
        _discard(built)
        raise TryInitError(f"Failed to build {e.signal} pipeline", e) from e

    traces, metrics, logs = built
    return WithEndpoint(traces=traces, metrics=metrics, logs=logs)


def _install(
    layers: list[logging.Handler],
    filters: SinkFilters,
    tracer: Tracer | None = None,
) -> None:
    try:
        install(layers, filters, tracer=tracer)
    except RegistryAlreadyInitializedError as e:
        for layer in layers:
            layer.close()
        raise TryInitError("Could not install telemetry dispatch fabric", e) from e


def _discard(handles: Sequence[ProviderHandle]) -> None:
    """Release providers of an aborted initialization."""
    for handle in handles:
        try:
            failures = handle.shutdown()
        except AlreadyShutdownError:
            continue
        for failure in failures:
            logger.debug(
                "Discarded provider failed to release",
                extra={"signal": failure.signal, "error": failure.error},
            )


def _report_invalid_directives(filters: SinkFilters) -> None:
    for directive in filters.invalid_directives:
        logger.warning("Ignoring invalid filter directive", extra={"directive": directive})


__all__ = ["init", "init_with_config", "try_init"]
