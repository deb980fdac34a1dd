"""Sink layers of the dispatch fabric.

Each layer is a stdlib ``logging.Handler`` attached to the root logger and
carrying its own EffectiveFilter, so every emitted event reaches every layer
and each layer decides independently whether to forward it:

- ConsoleLayer: renders to stdout via structlog's ProcessorFormatter
- TraceLayer: records events on the current span
- MetricsLayer: turns ``monotonic_counter.*``, ``counter.*`` and
  ``histogram.*`` event fields into metric measurements
- LogLayer: exports events as OpenTelemetry log records

The bridge layers ignore the ``opentelemetry`` and ``otlp_logger`` logger
hierarchies so exporter diagnostics never feed back into the exporters, and
drop events once their provider has been shut down.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import MutableMapping
from typing import IO, TYPE_CHECKING, Any

import structlog
from opentelemetry import trace
from opentelemetry.sdk._logs import LoggingHandler
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID, Status, StatusCode

if TYPE_CHECKING:
    from opentelemetry.metrics import Counter, Histogram, Meter, UpDownCounter

    from otlp_logger.filter import EffectiveFilter
    from otlp_logger.lifecycle import ProviderHandle

# Type alias for structlog EventDict
EventDict = MutableMapping[str, Any]

INTERNAL_TARGETS = ("opentelemetry", "otlp_logger")

MONOTONIC_COUNTER_PREFIX = "monotonic_counter."
COUNTER_PREFIX = "counter."
HISTOGRAM_PREFIX = "histogram."

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


def add_trace_context(
    logger: Any,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Add trace_id and span_id of the active span to a structlog event.

    Args:
        logger: The logger instance (unused, required by structlog processor API).
        method_name: The log method name (unused).
        event_dict: The event dictionary to enrich.

    Returns:
        The event dictionary, with trace context when a span is active.
    """
    ctx = trace.get_current_span().get_span_context()
    if ctx.trace_id != INVALID_TRACE_ID and ctx.span_id != INVALID_SPAN_ID:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def event_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Structured fields attached to a record.

    Covers both stdlib ``extra=`` values and structlog key/value pairs,
    which reach the record as extras.
    """
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


def _attribute_value(value: Any) -> Any:
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def _is_internal(name: str) -> bool:
    return any(name == t or name.startswith(t + ".") for t in INTERNAL_TARGETS)


class ConsoleLayer(logging.StreamHandler):
    """Console sink rendering events with structlog.

    Args:
        event_filter: Filter deciding which events are printed.
        json_output: Render JSON lines instead of compact console output.
        stream: Output stream, defaults to ``sys.stdout``.
    """

    def __init__(
        self,
        event_filter: EffectiveFilter,
        json_output: bool = False,
        stream: IO[str] | None = None,
    ) -> None:
        super().__init__(stream if stream is not None else sys.stdout)
        self.event_filter = event_filter
        self.addFilter(event_filter)

        renderer: Any
        pre_chain: list[Any] = [
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ]
        if json_output:
            pre_chain.append(structlog.processors.format_exc_info)
            renderer = structlog.processors.JSONRenderer()
        else:
            renderer = structlog.dev.ConsoleRenderer(colors=False)

        self.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
                foreign_pre_chain=pre_chain,
            )
        )


class _BridgeLayer(logging.Handler):
    """Base for layers forwarding events into an owned provider."""

    def __init__(self, event_filter: EffectiveFilter, handle: ProviderHandle) -> None:
        super().__init__()
        self.event_filter = event_filter
        self.provider_handle = handle
        self.addFilter(event_filter)

    def filter(self, record: logging.LogRecord) -> bool:
        if self.provider_handle.is_shut_down or _is_internal(record.name):
            return False
        return bool(super().filter(record))


class TraceLayer(_BridgeLayer):
    """Record accepted events as events on the current recording span.

    Error-class events also mark the span status as ERROR. Events emitted
    outside a recording span are dropped.
    """

    def emit(self, record: logging.LogRecord) -> None:
        span = trace.get_current_span()
        if not span.is_recording():
            return
        try:
            message = record.getMessage()
            attributes = {
                "level": record.levelname,
                "target": record.name,
            }
            for key, value in event_fields(record).items():
                attributes[key] = _attribute_value(value)
            span.add_event(message, attributes=attributes)
            if record.exc_info and record.exc_info[1] is not None:
                span.record_exception(record.exc_info[1])
            if record.levelno >= logging.ERROR:
                span.set_status(Status(StatusCode.ERROR, message))
        except Exception:
            self.handleError(record)


class MetricsLayer(_BridgeLayer):
    """Turn prefixed event fields into metric measurements.

    ``monotonic_counter.<name>`` adds to a counter, ``counter.<name>`` to an
    up-down counter and ``histogram.<name>`` records into a histogram. All
    other scalar fields of the event become measurement attributes.

    Example:
        >>> log.info("request", **{"monotonic_counter.requests": 1, "route": "/"})
    """

    def __init__(self, event_filter: EffectiveFilter, handle: ProviderHandle) -> None:
        super().__init__(event_filter, handle)
        self._meter: Meter = handle.provider.get_meter("otlp_logger")  # type: ignore[attr-defined]
        self._counters: dict[str, Counter] = {}
        self._up_down_counters: dict[str, UpDownCounter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._instrument_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        fields = event_fields(record)
        measurements: list[tuple[str, str, int | float]] = []
        attributes: dict[str, Any] = {}
        for key, value in fields.items():
            prefix = _metric_prefix(key)
            if prefix is None:
                if isinstance(value, (str, bool, int, float)):
                    attributes[key] = value
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            measurements.append((prefix, key[len(prefix) :], value))

        if not measurements:
            return
        try:
            for prefix, name, value in measurements:
                self._record(prefix, name, value, attributes)
        except Exception:
            self.handleError(record)

    def _record(
        self,
        prefix: str,
        name: str,
        value: int | float,
        attributes: dict[str, Any],
    ) -> None:
        if prefix == MONOTONIC_COUNTER_PREFIX:
            if value >= 0:
                self._instrument(self._counters, name, self._meter.create_counter).add(
                    value, attributes=attributes
                )
        elif prefix == COUNTER_PREFIX:
            self._instrument(
                self._up_down_counters, name, self._meter.create_up_down_counter
            ).add(value, attributes=attributes)
        else:
            self._instrument(self._histograms, name, self._meter.create_histogram).record(
                value, attributes=attributes
            )

    def _instrument(self, cache: dict[str, Any], name: str, create: Any) -> Any:
        instrument = cache.get(name)
        if instrument is not None:
            return instrument
        with self._instrument_lock:
            if name not in cache:
                cache[name] = create(name)
            return cache[name]


def _metric_prefix(key: str) -> str | None:
    for prefix in (MONOTONIC_COUNTER_PREFIX, COUNTER_PREFIX, HISTOGRAM_PREFIX):
        if key.startswith(prefix) and len(key) > len(prefix):
            return prefix
    return None


class LogLayer(LoggingHandler):
    """Export accepted events as OpenTelemetry log records."""

    # TODO: opentelemetry-sdk deprecates its LoggingHandler in favour of the
    # handler shipped by opentelemetry-instrumentation-logging; switch the base
    # class once that handler accepts an explicit logger_provider.

    def __init__(self, event_filter: EffectiveFilter, handle: ProviderHandle) -> None:
        super().__init__(level=logging.NOTSET, logger_provider=handle.provider)
        self.event_filter = event_filter
        self.provider_handle = handle
        self.addFilter(event_filter)

    def filter(self, record: logging.LogRecord) -> bool:
        if self.provider_handle.is_shut_down or _is_internal(record.name):
            return False
        return bool(super().filter(record))


__all__ = [
    "COUNTER_PREFIX",
    "HISTOGRAM_PREFIX",
    "INTERNAL_TARGETS",
    "MONOTONIC_COUNTER_PREFIX",
    "ConsoleLayer",
    "LogLayer",
    "MetricsLayer",
    "TraceLayer",
    "add_trace_context",
    "event_fields",
]
