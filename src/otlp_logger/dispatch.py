"""Dispatch fabric: composition and one-time installation of the sink layers.

The fabric is the set of layers attached to the root logger. Any event
emitted through stdlib ``logging`` or ``structlog`` passes through every
layer, and each layer's own filter decides whether it is forwarded. Exactly
one fabric may be installed per process; a second installation fails with
RegistryAlreadyInitializedError.

Installation also:

- configures structlog to hand events to stdlib logging as message + extras
- sets the root logger level to the most verbose level any layer accepts
- installs the global W3C propagator (in both modes)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from otlp_logger.errors import RegistryAlreadyInitializedError
from otlp_logger.layers import ConsoleLayer, LogLayer, MetricsLayer, TraceLayer
from otlp_logger.propagation import configure_propagators

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

    from otlp_logger.filter import EffectiveFilter, SinkFilters
    from otlp_logger.lifecycle import WithEndpoint

# Root level used when every layer is switched off.
_SILENT_LEVEL = logging.CRITICAL + 10

_lock = threading.Lock()
_installed: Fabric | None = None


@dataclass(frozen=True)
class Fabric:
    """The installed set of layers.

    Attributes:
        layers: Handlers attached to the root logger.
        filters: Resolved filters of all sinks.
        tracer: Tracer backed by the owned trace provider (remote mode only).
    """

    layers: tuple[logging.Handler, ...]
    filters: SinkFilters
    tracer: Tracer | None = None

    @property
    def trace_filter(self) -> EffectiveFilter:
        return self.filters.trace


def compose_stdout_only(filters: SinkFilters, json_output: bool = False) -> list[logging.Handler]:
    """Layers for console-only mode: just the console."""
    return [ConsoleLayer(filters.stdout, json_output=json_output)]


def compose_remote(
    filters: SinkFilters,
    mode: WithEndpoint,
    json_output: bool = False,
) -> list[logging.Handler]:
    """Layers for remote mode: console plus trace, metrics and log bridges."""
    return [
        ConsoleLayer(filters.stdout, json_output=json_output),
        TraceLayer(filters.trace, mode.traces),
        MetricsLayer(filters.metrics, mode.metrics),
        LogLayer(filters.log, mode.logs),
    ]


def configure_structlog() -> None:
    """Route structlog events into stdlib logging as message plus extras."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _root_level(layers: Sequence[logging.Handler]) -> int:
    thresholds = []
    for layer in layers:
        event_filter = getattr(layer, "event_filter", None)
        if event_filter is None:
            continue
        threshold = event_filter.max_level.threshold
        if threshold is not None:
            thresholds.append(threshold)
    return min(thresholds) if thresholds else _SILENT_LEVEL


def install(
    layers: Sequence[logging.Handler],
    filters: SinkFilters,
    tracer: Tracer | None = None,
) -> Fabric:
    """Install the fabric as process-wide state.

    Args:
        layers: Layers to attach to the root logger.
        filters: Resolved sink filters.
        tracer: Tracer used for level-gated spans, if any.

    Returns:
        The installed Fabric.

    Raises:
        RegistryAlreadyInitializedError: If a fabric is already installed.
    """
    global _installed

    with _lock:
        if _installed is not None:
            raise RegistryAlreadyInitializedError()

        configure_structlog()
        root = logging.getLogger()
        for layer in layers:
            root.addHandler(layer)
        root.setLevel(_root_level(layers))
        configure_propagators()

        _installed = Fabric(layers=tuple(layers), filters=filters, tracer=tracer)
        return _installed


def installed_fabric() -> Fabric | None:
    """Return the installed fabric, or None before initialization."""
    return _installed


def is_installed() -> bool:
    return _installed is not None


def _reset_fabric() -> None:
    """Detach the installed fabric (test isolation only)."""
    global _installed
    with _lock:
        if _installed is not None:
            root = logging.getLogger()
            for layer in _installed.layers:
                root.removeHandler(layer)
                layer.close()
        _installed = None
    structlog.reset_defaults()


__all__ = [
    "Fabric",
    "compose_remote",
    "compose_stdout_only",
    "configure_structlog",
    "install",
    "installed_fabric",
    "is_installed",
]
