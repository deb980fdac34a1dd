"""Unit tests for level-aware spans.

Tests cover:
- create_span() records only when the trace filter enables (target, level)
- Filtered spans keep the current context for enabled descendants
- Errors mark the span and propagate
- @traced on sync and async functions
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import pytest
from opentelemetry.trace import StatusCode

from otlp_logger import LevelFilter, OtlpConfig, init_with_config
from otlp_logger.tracing import create_span, gated_tracer, traced

if TYPE_CHECKING:
    from collections.abc import Generator

    from conftest import InMemoryExporters

    from otlp_logger import Logger


@pytest.fixture
def remote_logger(
    in_memory_exporters: InMemoryExporters,
) -> Generator[Logger, None, None]:
    """Remote-mode Logger with traces at INFO and shop.db at DEBUG."""
    config = OtlpConfig(otlp_endpoint="http://localhost:4317")
    logger = init_with_config(config, {"OTLP_LOG": "info,shop.db=debug"})
    yield logger
    logger.shutdown()


def _finished(logger: Logger, exporters: InMemoryExporters) -> list[str]:
    logger.shutdown()
    return [span.name for span in exporters.spans.get_finished_spans()]


class TestCreateSpan:
    """Tests for create_span()."""

    def test_non_recording_before_init(self) -> None:
        """Test spans are inert when no fabric is installed."""
        with create_span("op") as span:
            assert not span.is_recording()
        assert gated_tracer(logging.ERROR) is None

    def test_non_recording_in_stdout_only_mode(self) -> None:
        """Test console-only mode never records spans."""
        init_with_config(OtlpConfig(trace_level=LevelFilter.TRACE), {})

        with create_span("op") as span:
            assert not span.is_recording()

    def test_enabled_span_recorded(
        self,
        remote_logger: Logger,
        in_memory_exporters: InMemoryExporters,
    ) -> None:
        """Test an INFO span is exported with level and attributes."""
        with create_span("checkout", attributes={"cart.items": 3}) as span:
            assert span.is_recording()

        remote_logger.shutdown()
        (finished,) = in_memory_exporters.spans.get_finished_spans()
        assert finished.name == "checkout"
        assert finished.attributes["level"] == "INFO"
        assert finished.attributes["cart.items"] == 3

    def test_level_gating_per_target(
        self,
        remote_logger: Logger,
        in_memory_exporters: InMemoryExporters,
    ) -> None:
        """Test DEBUG spans are recorded only for targets enabled at DEBUG."""
        with create_span("query", level=logging.DEBUG, target="shop.db"):
            pass
        with create_span("render", level=logging.DEBUG, target="shop.web"):
            pass

        assert _finished(remote_logger, in_memory_exporters) == ["query"]

    def test_filtered_parent_keeps_context(
        self,
        remote_logger: Logger,
        in_memory_exporters: InMemoryExporters,
    ) -> None:
        """Test an enabled child of a filtered span attaches to the outer span."""
        with create_span("request") as outer:
            with create_span("noise", level=logging.DEBUG, target="shop.web"):
                with create_span("step") as inner:
                    pass

        remote_logger.shutdown()
        spans = {s.name: s for s in in_memory_exporters.spans.get_finished_spans()}
        assert set(spans) == {"request", "step"}
        assert spans["step"].parent.span_id == outer.get_span_context().span_id
        assert inner.get_span_context().trace_id == outer.get_span_context().trace_id

    def test_error_recorded_and_reraised(
        self,
        remote_logger: Logger,
        in_memory_exporters: InMemoryExporters,
    ) -> None:
        """Test exceptions set ERROR status and propagate."""
        with pytest.raises(ValueError, match="declined"):
            with create_span("payment"):
                raise ValueError("declined")

        remote_logger.shutdown()
        (span,) = in_memory_exporters.spans.get_finished_spans()
        assert span.status.status_code is StatusCode.ERROR
        assert span.attributes["exception.type"] == "ValueError"


class TestTracedDecorator:
    """Tests for @traced."""

    def test_bare_decorator(
        self,
        remote_logger: Logger,
        in_memory_exporters: InMemoryExporters,
    ) -> None:
        """Test @traced names the span after the function and passes results through."""

        @traced
        def compute(x: int) -> int:
            return x * 2

        assert compute(21) == 42
        assert _finished(remote_logger, in_memory_exporters) == ["compute"]

    def test_debug_decorator_filtered(
        self,
        remote_logger: Logger,
        in_memory_exporters: InMemoryExporters,
    ) -> None:
        """Test a DEBUG span outside enabled targets is not recorded."""

        @traced(name="hot_loop", level=logging.DEBUG, target="shop.web")
        def loop() -> str:
            return "done"

        assert loop() == "done"
        assert _finished(remote_logger, in_memory_exporters) == []

    def test_async_function(
        self,
        remote_logger: Logger,
        in_memory_exporters: InMemoryExporters,
    ) -> None:
        """Test coroutines are wrapped and awaited inside the span."""

        @traced(name="fetch", target="shop.db", level=logging.DEBUG)
        async def fetch() -> str:
            return "rows"

        assert asyncio.run(fetch()) == "rows"
        assert _finished(remote_logger, in_memory_exporters) == ["fetch"]

    def test_preserves_metadata(self) -> None:
        """Test functools.wraps keeps the name and docstring."""

        @traced
        def documented() -> None:
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."
