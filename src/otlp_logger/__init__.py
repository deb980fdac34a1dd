"""otlp-logger: one-call OpenTelemetry bootstrap for traces, metrics and logs.

Call ``init()`` (environment driven) or ``init_with_config()`` once near
process start and ``shutdown()`` on the returned Logger near process end.
Without an OTLP endpoint, output falls back to the console only.

Example:
    >>> import structlog
    >>> import otlp_logger
    >>> config = (
    ...     otlp_logger.OtlpConfig.builder()
    ...     .service_name("svc-a")
    ...     .otlp_endpoint("http://localhost:4317")
    ...     .trace_level(otlp_logger.LevelFilter.INFO)
    ...     .build()
    ... )
    >>> with otlp_logger.init_with_config(config):
    ...     with otlp_logger.create_span("checkout"):
    ...         structlog.get_logger().info("order_placed", **{"monotonic_counter.orders": 1})
"""

from __future__ import annotations

__version__ = "0.1.0"

from otlp_logger.config import (
    Base2ExponentialHistogram,
    DefaultAggregation,
    DropAggregation,
    ExplicitBucketHistogram,
    LastValueAggregation,
    MetricsAggregation,
    MetricsAggregationConfig,
    MetricsAggregationConfigBuilder,
    OtlpConfig,
    OtlpConfigBuilder,
    SumAggregation,
)
from otlp_logger.errors import (
    AlreadyShutdownError,
    ConfigurationError,
    ExportSetupError,
    OtlpLoggerError,
    RegistryAlreadyInitializedError,
    ShutdownError,
    SignalFailure,
    TryInitError,
)
from otlp_logger.filter import TRACE, EffectiveFilter, LevelFilter
from otlp_logger.initialization import init, init_with_config, try_init
from otlp_logger.lifecycle import Logger, LoggerState, StdoutOnly, WithEndpoint
from otlp_logger.propagation import (
    extract_context,
    get_span_id,
    get_trace_id,
    inject_context,
)
from otlp_logger.tracing import create_span, traced

__all__ = [
    "TRACE",
    "AlreadyShutdownError",
    "Base2ExponentialHistogram",
    "ConfigurationError",
    "DefaultAggregation",
    "DropAggregation",
    "EffectiveFilter",
    "ExplicitBucketHistogram",
    "ExportSetupError",
    "LastValueAggregation",
    "LevelFilter",
    "Logger",
    "LoggerState",
    "MetricsAggregation",
    "MetricsAggregationConfig",
    "MetricsAggregationConfigBuilder",
    "OtlpConfig",
    "OtlpConfigBuilder",
    "OtlpLoggerError",
    "RegistryAlreadyInitializedError",
    "ShutdownError",
    "SignalFailure",
    "StdoutOnly",
    "SumAggregation",
    "TryInitError",
    "WithEndpoint",
    "__version__",
    "create_span",
    "extract_context",
    "get_span_id",
    "get_trace_id",
    "init",
    "init_with_config",
    "inject_context",
    "traced",
    "try_init",
]
