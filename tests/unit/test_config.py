"""Unit tests for configuration models.

Tests cover:
- OtlpConfig builder defaults and subsets
- Level and protocol coercion
- Environment merge (explicit fields never overridden)
- MetricsAggregation models and builder
- Endpoint validation and per-signal HTTP paths
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from otlp_logger.config import (
    DEFAULT_HISTOGRAM_BOUNDARIES,
    Base2ExponentialHistogram,
    DropAggregation,
    ExplicitBucketHistogram,
    LastValueAggregation,
    MetricsAggregationConfig,
    OtlpConfig,
    SumAggregation,
    http_signal_endpoint,
    validate_endpoint,
)
from otlp_logger.errors import ConfigurationError
from otlp_logger.filter import LevelFilter


class TestOtlpConfigBuilder:
    """Tests for OtlpConfig.builder()."""

    def test_empty_builder_yields_all_unset(self) -> None:
        """Test a builder with no fields set produces an all-None config."""
        config = OtlpConfig.builder().build()

        for field_name in OtlpConfig.model_fields:
            assert getattr(config, field_name) is None

    @pytest.mark.parametrize(
        "setters",
        [
            {"service_name": "svc-a"},
            {"otlp_endpoint": "http://localhost:4317"},
            {"log_level": LevelFilter.ERROR, "trace_level": LevelFilter.INFO},
            {"deployment_environment": "prod", "stdout_level": "debug"},
            {"metrics_aggregation": MetricsAggregationConfig()},
        ],
    )
    def test_any_subset_builds(self, setters: dict[str, object]) -> None:
        """Test any subset of setters builds successfully."""
        builder = OtlpConfig.builder()
        for name, value in setters.items():
            getattr(builder, name)(value)

        config = builder.build()

        assert config.service_name == setters.get("service_name")

    def test_setters_in_any_order(self) -> None:
        """Test setter order does not change the result."""
        first = (
            OtlpConfig.builder()
            .service_name("svc-a")
            .otlp_endpoint("http://localhost:4317")
            .log_level(LevelFilter.WARN)
            .build()
        )
        second = (
            OtlpConfig.builder()
            .log_level(LevelFilter.WARN)
            .otlp_endpoint("http://localhost:4317")
            .service_name("svc-a")
            .build()
        )

        assert first == second

    def test_level_names_are_coerced(self) -> None:
        """Test level strings in any case become LevelFilter members."""
        config = OtlpConfig.builder().trace_level("INFO").metrics_level("warning").build()

        assert config.trace_level is LevelFilter.INFO
        assert config.metrics_level is LevelFilter.WARN

    def test_unknown_level_raises_configuration_error(self) -> None:
        """Test an uncoercible explicit level is a ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            OtlpConfig.builder().log_level("verbose").build()

        assert exc_info.value.field == "log_level"

    def test_http_protocol_shorthand(self) -> None:
        """Test 'http' is normalized to 'http/protobuf'."""
        config = OtlpConfig.builder().otlp_protocol("http").build()

        assert config.otlp_protocol == "http/protobuf"

    def test_protocol_defaults_to_grpc(self) -> None:
        """Test the effective protocol is grpc when unset."""
        assert OtlpConfig().protocol == "grpc"

    def test_config_is_frozen(self) -> None:
        """Test OtlpConfig cannot be mutated."""
        config = OtlpConfig(service_name="svc-a")

        with pytest.raises(ValidationError):
            config.service_name = "svc-b"  # type: ignore[misc]

    def test_extra_fields_forbidden(self) -> None:
        """Test unknown fields are rejected."""
        with pytest.raises(ValidationError):
            OtlpConfig(unknown="value")  # type: ignore[call-arg]


class TestWithEnvDefaults:
    """Tests for OtlpConfig.with_env_defaults()."""

    def test_unset_fields_filled_from_environment(self) -> None:
        """Test unset fields take environment values."""
        environ = {
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4317",
            "OTEL_SERVICE_NAME": "env-service",
            "OTEL_SERVICE_NAMESPACE": "env-ns",
            "OTEL_SERVICE_VERSION": "1.2.3",
            "OTEL_SERVICE_INSTANCE_ID": "instance-7",
            "OTEL_DEPLOYMENT_ENVIRONMENT": "staging",
            "OTEL_EXPORTER_OTLP_PROTOCOL": "http/protobuf",
        }

        config = OtlpConfig().with_env_defaults(environ)

        assert config.otlp_endpoint == "http://collector:4317"
        assert config.service_name == "env-service"
        assert config.service_namespace == "env-ns"
        assert config.service_version == "1.2.3"
        assert config.service_instance_id == "instance-7"
        assert config.deployment_environment == "staging"
        assert config.otlp_protocol == "http/protobuf"

    def test_explicit_fields_not_overridden(self) -> None:
        """Test explicit values win over the environment."""
        environ = {
            "OTEL_SERVICE_NAME": "env-service",
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://env:4317",
        }
        config = OtlpConfig(service_name="explicit", log_level=LevelFilter.INFO)

        merged = config.with_env_defaults(environ)

        assert merged.service_name == "explicit"
        assert merged.otlp_endpoint == "http://env:4317"
        assert merged.log_level is LevelFilter.INFO

    def test_blank_values_count_as_unset(self) -> None:
        """Test empty or whitespace-only variables are ignored."""
        environ = {"OTEL_EXPORTER_OTLP_ENDPOINT": "   ", "OTEL_SERVICE_NAME": ""}

        config = OtlpConfig().with_env_defaults(environ)

        assert config.otlp_endpoint is None
        assert config.service_name is None

    def test_merge_is_pure(self) -> None:
        """Test the original config is left untouched."""
        config = OtlpConfig()

        merged = config.with_env_defaults({"OTEL_SERVICE_NAME": "env-service"})

        assert config.service_name is None
        assert merged is not config

    def test_invalid_environment_protocol(self) -> None:
        """Test an unknown protocol from the environment is a ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            OtlpConfig().with_env_defaults({"OTEL_EXPORTER_OTLP_PROTOCOL": "carrier-pigeon"})

        assert exc_info.value.field == "otlp_protocol"


class TestMetricsAggregation:
    """Tests for aggregation models and MetricsAggregationConfig."""

    def test_defaults_per_instrument_kind(self) -> None:
        """Test counters sum, gauges keep last value, histograms use buckets."""
        config = MetricsAggregationConfig()

        assert isinstance(config.counter, SumAggregation)
        assert isinstance(config.gauge, LastValueAggregation)
        assert isinstance(config.histogram, ExplicitBucketHistogram)
        assert config.histogram.boundaries == DEFAULT_HISTOGRAM_BOUNDARIES
        assert config.histogram.record_min_max is True

    def test_builder_overrides_single_kind(self) -> None:
        """Test the builder replaces only the chosen kind."""
        config = (
            MetricsAggregationConfig.builder()
            .histogram(ExplicitBucketHistogram(boundaries=(1.0, 5.0, 10.0), record_min_max=False))
            .counter(DropAggregation())
            .build()
        )

        assert config.histogram.boundaries == (1.0, 5.0, 10.0)
        assert isinstance(config.counter, DropAggregation)
        assert isinstance(config.gauge, LastValueAggregation)

    def test_boundaries_must_increase(self) -> None:
        """Test non-increasing histogram boundaries are rejected."""
        with pytest.raises(ValidationError, match="strictly increasing"):
            ExplicitBucketHistogram(boundaries=(1.0, 1.0, 2.0))

    def test_discriminated_union_from_dict(self) -> None:
        """Test aggregations can be selected by their 'kind' tag."""
        config = MetricsAggregationConfig.model_validate(
            {"histogram": {"kind": "base2_exponential_histogram", "max_size": 80}}
        )

        assert isinstance(config.histogram, Base2ExponentialHistogram)
        assert config.histogram.max_size == 80

    def test_exponential_scale_bounds(self) -> None:
        """Test max_scale outside [-10, 20] is rejected."""
        with pytest.raises(ValidationError):
            Base2ExponentialHistogram(max_scale=21)


class TestEndpointHelpers:
    """Tests for validate_endpoint() and http_signal_endpoint()."""

    @pytest.mark.parametrize(
        "endpoint",
        ["http://localhost:4317", "https://collector.example.com", " http://otel:4318/ "],
    )
    def test_valid_endpoints(self, endpoint: str) -> None:
        """Test http and https URLs with a host are accepted."""
        assert validate_endpoint(endpoint) == endpoint.strip()

    @pytest.mark.parametrize(
        "endpoint",
        ["localhost:4317", "ftp://collector:21", "http://", "not a url"],
    )
    def test_invalid_endpoints(self, endpoint: str) -> None:
        """Test non-http URLs and missing hosts are rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            validate_endpoint(endpoint)

        assert exc_info.value.field == "otlp_endpoint"

    def test_signal_path_appended(self) -> None:
        """Test the per-signal path is appended to the base URL."""
        assert (
            http_signal_endpoint("http://collector:4318/", "/v1/traces")
            == "http://collector:4318/v1/traces"
        )

    def test_signal_path_not_duplicated(self) -> None:
        """Test an endpoint already naming the path is kept."""
        assert (
            http_signal_endpoint("http://collector:4318/v1/logs", "/v1/logs")
            == "http://collector:4318/v1/logs"
        )

    def test_other_signal_path_replaced(self) -> None:
        """Test a path for another signal is swapped for the requested one."""
        assert (
            http_signal_endpoint("http://collector:4318/v1/traces", "/v1/metrics")
            == "http://collector:4318/v1/metrics"
        )
