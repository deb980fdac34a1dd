"""Configuration models (Pydantic v2).

OtlpConfig is an immutable record of optional fields. Nothing is required:
an empty config selects console-only output, and any field left unset may be
filled from the environment by ``with_env_defaults``. Values are validated
lazily by the components that consume them (endpoint syntax is checked at
initialization, not here).

Example:
    >>> config = (
    ...     OtlpConfig.builder()
    ...     .service_name("svc-a")
    ...     .otlp_endpoint("http://localhost:4317")
    ...     .log_level(LevelFilter.ERROR)
    ...     .build()
    ... )
    >>> config.trace_level is None
    True
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from otlp_logger.errors import ConfigurationError
from otlp_logger.filter import LevelFilter

# Environment variables consulted for fields left unset.
ENV_VARS: dict[str, str] = {
    "otlp_endpoint": "OTEL_EXPORTER_OTLP_ENDPOINT",
    "otlp_protocol": "OTEL_EXPORTER_OTLP_PROTOCOL",
    "service_name": "OTEL_SERVICE_NAME",
    "service_namespace": "OTEL_SERVICE_NAMESPACE",
    "service_version": "OTEL_SERVICE_VERSION",
    "service_instance_id": "OTEL_SERVICE_INSTANCE_ID",
    "deployment_environment": "OTEL_DEPLOYMENT_ENVIRONMENT",
}

DEFAULT_HISTOGRAM_BOUNDARIES: tuple[float, ...] = (
    0.00025,
    0.0005,
    0.001,
    0.0025,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
)

OtlpProtocol = Literal["grpc", "http/protobuf"]


class DefaultAggregation(BaseModel):
    """Let the SDK choose the aggregation for the instrument kind."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["default"] = "default"


class DropAggregation(BaseModel):
    """Discard all measurements."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["drop"] = "drop"


class SumAggregation(BaseModel):
    """Arithmetic sum of measurements."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["sum"] = "sum"


class LastValueAggregation(BaseModel):
    """Most recent measurement."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["last_value"] = "last_value"


class ExplicitBucketHistogram(BaseModel):
    """Histogram with fixed bucket boundaries.

    Attributes:
        boundaries: Increasing bucket boundaries.
        record_min_max: Whether to record min and max of each collection cycle.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["explicit_bucket_histogram"] = "explicit_bucket_histogram"
    boundaries: tuple[float, ...] = Field(
        default=DEFAULT_HISTOGRAM_BOUNDARIES,
        description="Increasing bucket boundaries",
    )
    record_min_max: bool = Field(
        default=True,
        description="Record min and max values",
    )

    @field_validator("boundaries")
    @classmethod
    def validate_increasing(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        """Validate that boundaries are strictly increasing."""
        if any(later <= earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("histogram boundaries must be strictly increasing")
        return value


class Base2ExponentialHistogram(BaseModel):
    """Histogram with base-2 exponential buckets."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["base2_exponential_histogram"] = "base2_exponential_histogram"
    max_size: int = Field(default=160, gt=1, description="Maximum number of buckets")
    max_scale: int = Field(default=20, ge=-10, le=20, description="Maximum scale factor")


MetricsAggregation = Annotated[
    Union[
        DefaultAggregation,
        DropAggregation,
        SumAggregation,
        LastValueAggregation,
        ExplicitBucketHistogram,
        Base2ExponentialHistogram,
    ],
    Field(discriminator="kind"),
]


class MetricsAggregationConfig(BaseModel):
    """Aggregation selection per instrument kind.

    Attributes:
        counter: Aggregation for counters and up-down counters.
        gauge: Aggregation for gauges.
        histogram: Aggregation for histograms.

    Examples:
        >>> MetricsAggregationConfig.builder().histogram(
        ...     ExplicitBucketHistogram(boundaries=(0.0, 5.0, 10.0))
        ... ).build()
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    counter: MetricsAggregation = Field(
        default_factory=SumAggregation,
        description="Aggregation for counters",
    )
    gauge: MetricsAggregation = Field(
        default_factory=LastValueAggregation,
        description="Aggregation for gauges",
    )
    histogram: MetricsAggregation = Field(
        default_factory=ExplicitBucketHistogram,
        description="Aggregation for histograms",
    )

    @staticmethod
    def builder() -> MetricsAggregationConfigBuilder:
        return MetricsAggregationConfigBuilder()


class OtlpConfig(BaseModel):
    """Process-wide telemetry configuration.

    Every field defaults to None ("unset"). An unset ``otlp_endpoint``
    selects console-only mode.

    Attributes:
        service_name: ``service.name`` resource attribute.
        service_namespace: ``service.namespace`` resource attribute.
        service_version: ``service.version`` resource attribute.
        service_instance_id: ``service.instance.id`` resource attribute.
        deployment_environment: ``deployment.environment.name`` resource attribute.
        otlp_endpoint: OTLP collector endpoint.
        otlp_protocol: Export protocol, ``grpc`` when unset.
        trace_level: Filter for the trace sink.
        metrics_level: Filter for the metrics sink.
        log_level: Filter for the log sink.
        stdout_level: Filter for the console sink, falls back to ``log_level``.
        metrics_aggregation: Aggregation per instrument kind.
        stdout_json: Render console output as JSON instead of compact text.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    service_name: str | None = Field(default=None, description="Service name")
    service_namespace: str | None = Field(default=None, description="Service namespace")
    service_version: str | None = Field(default=None, description="Service version")
    service_instance_id: str | None = Field(default=None, description="Service instance id")
    deployment_environment: str | None = Field(
        default=None,
        description="Deployment environment name",
    )
    otlp_endpoint: str | None = Field(default=None, description="OTLP collector endpoint")
    otlp_protocol: OtlpProtocol | None = Field(default=None, description="OTLP export protocol")
    trace_level: LevelFilter | None = Field(default=None, description="Trace sink filter")
    metrics_level: LevelFilter | None = Field(default=None, description="Metrics sink filter")
    log_level: LevelFilter | None = Field(default=None, description="Log sink filter")
    stdout_level: LevelFilter | None = Field(default=None, description="Console sink filter")
    metrics_aggregation: MetricsAggregationConfig | None = Field(
        default=None,
        description="Metrics aggregation per instrument kind",
    )
    stdout_json: bool | None = Field(default=None, description="JSON console output")

    @field_validator("trace_level", "metrics_level", "log_level", "stdout_level", mode="before")
    @classmethod
    def parse_level(cls, value: Any) -> Any:
        """Accept level names in any case as well as LevelFilter members."""
        if value is None or isinstance(value, LevelFilter):
            return value
        if isinstance(value, (str, int)):
            return LevelFilter.parse(value)
        return value

    @field_validator("otlp_protocol", mode="before")
    @classmethod
    def normalize_protocol(cls, value: Any) -> Any:
        """Accept ``http`` as shorthand for ``http/protobuf``."""
        if isinstance(value, str):
            value = value.strip().lower()
            if value == "http":
                return "http/protobuf"
        return value

    @staticmethod
    def builder() -> OtlpConfigBuilder:
        return OtlpConfigBuilder()

    @property
    def protocol(self) -> OtlpProtocol:
        """Effective export protocol."""
        return self.otlp_protocol or "grpc"

    def with_env_defaults(self, environ: Mapping[str, str] | None = None) -> OtlpConfig:
        """Return a copy with unset fields filled from the environment.

        Fields already set are never overridden. Blank variables count as unset.

        Args:
            environ: Environment mapping, defaults to ``os.environ``.

        Returns:
            A new OtlpConfig.

        Raises:
            ConfigurationError: If an environment value cannot be coerced.
        """
        env = os.environ if environ is None else environ
        updates: dict[str, str] = {}
        for field_name, var in ENV_VARS.items():
            if getattr(self, field_name) is not None:
                continue
            value = env.get(var, "").strip()
            if value:
                updates[field_name] = value
        if not updates:
            return self
        return _validate({**self.model_dump(exclude_none=True), **updates})


class OtlpConfigBuilder:
    """Fluent builder for OtlpConfig.

    Setters may be called in any order and any subset; ``build()`` succeeds
    unless an explicit value cannot be coerced (for example an unknown
    level name).
    """

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}

    def _set(self, name: str, value: Any) -> OtlpConfigBuilder:
        self._fields[name] = value
        return self

    def service_name(self, value: str | None) -> OtlpConfigBuilder:
        return self._set("service_name", value)

    def service_namespace(self, value: str | None) -> OtlpConfigBuilder:
        return self._set("service_namespace", value)

    def service_version(self, value: str | None) -> OtlpConfigBuilder:
        return self._set("service_version", value)

    def service_instance_id(self, value: str | None) -> OtlpConfigBuilder:
        return self._set("service_instance_id", value)

    def deployment_environment(self, value: str | None) -> OtlpConfigBuilder:
        return self._set("deployment_environment", value)

    def otlp_endpoint(self, value: str | None) -> OtlpConfigBuilder:
        return self._set("otlp_endpoint", value)

    def otlp_protocol(self, value: str | None) -> OtlpConfigBuilder:
        return self._set("otlp_protocol", value)

    def trace_level(self, value: LevelFilter | str | None) -> OtlpConfigBuilder:
        return self._set("trace_level", value)

    def metrics_level(self, value: LevelFilter | str | None) -> OtlpConfigBuilder:
        return self._set("metrics_level", value)

    def log_level(self, value: LevelFilter | str | None) -> OtlpConfigBuilder:
        return self._set("log_level", value)

    def stdout_level(self, value: LevelFilter | str | None) -> OtlpConfigBuilder:
        return self._set("stdout_level", value)

    def metrics_aggregation(self, value: MetricsAggregationConfig | None) -> OtlpConfigBuilder:
        return self._set("metrics_aggregation", value)

    def stdout_json(self, value: bool | None) -> OtlpConfigBuilder:
        return self._set("stdout_json", value)

    def build(self) -> OtlpConfig:
        """Build the configuration.

        Raises:
            ConfigurationError: If an explicit value cannot be coerced.
        """
        return _validate(self._fields)


class MetricsAggregationConfigBuilder:
    """Fluent builder for MetricsAggregationConfig."""

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}

    def counter(self, value: MetricsAggregation) -> MetricsAggregationConfigBuilder:
        self._fields["counter"] = value
        return self

    def gauge(self, value: MetricsAggregation) -> MetricsAggregationConfigBuilder:
        self._fields["gauge"] = value
        return self

    def histogram(self, value: MetricsAggregation) -> MetricsAggregationConfigBuilder:
        self._fields["histogram"] = value
        return self

    def build(self) -> MetricsAggregationConfig:
        try:
            return MetricsAggregationConfig(**self._fields)
        except ValidationError as e:
            raise _configuration_error(e) from e


def validate_endpoint(endpoint: str) -> str:
    """Check that an endpoint is an http(s) URL with a host.

    Args:
        endpoint: The configured OTLP endpoint.

    Returns:
        The endpoint with surrounding whitespace removed.

    Raises:
        ConfigurationError: If the endpoint is not a usable URL.
    """
    candidate = endpoint.strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https"):
        raise ConfigurationError(
            "otlp_endpoint",
            f"expected an http or https URL, got {endpoint!r}",
        )
    if not parsed.netloc:
        raise ConfigurationError("otlp_endpoint", f"missing host in {endpoint!r}")
    return candidate


def http_signal_endpoint(endpoint: str, signal_path: str) -> str:
    """Derive the per-signal URL used by the OTLP/HTTP exporters.

    Args:
        endpoint: Base collector endpoint, e.g. ``http://collector:4318``.
        signal_path: Signal path, e.g. ``/v1/traces``.

    Returns:
        The endpoint with ``signal_path`` appended, unless already present.
    """
    base = endpoint.rstrip("/")
    if base.endswith(signal_path):
        return base
    for known in ("/v1/traces", "/v1/metrics", "/v1/logs"):
        if base.endswith(known):
            base = base[: -len(known)]
            break
    return base + signal_path


def _validate(fields: Mapping[str, Any]) -> OtlpConfig:
    try:
        return OtlpConfig(**fields)
    except ValidationError as e:
        raise _configuration_error(e) from e


def _configuration_error(error: ValidationError) -> ConfigurationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "config"
    return ConfigurationError(field, first.get("msg", str(error)))


__all__ = [
    "DEFAULT_HISTOGRAM_BOUNDARIES",
    "ENV_VARS",
    "Base2ExponentialHistogram",
    "DefaultAggregation",
    "DropAggregation",
    "ExplicitBucketHistogram",
    "LastValueAggregation",
    "MetricsAggregation",
    "MetricsAggregationConfig",
    "MetricsAggregationConfigBuilder",
    "OtlpConfig",
    "OtlpConfigBuilder",
    "OtlpProtocol",
    "SumAggregation",
    "http_signal_endpoint",
    "validate_endpoint",
]
