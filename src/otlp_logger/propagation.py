"""W3C Trace Context and Baggage propagation.

The dispatch composer installs the global propagator in both remote and
console-only mode so that incoming trace context is honored regardless of
whether spans are exported.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.propagate import get_global_textmap, set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

if TYPE_CHECKING:
    from opentelemetry.context import Context

logger = logging.getLogger(__name__)


def configure_propagators() -> CompositePropagator:
    """Configure and set the global W3C propagators.

    Returns:
        The configured CompositePropagator instance.

    Examples:
        >>> propagator = configure_propagators()
        >>> isinstance(propagator, CompositePropagator)
        True
    """
    propagator = CompositePropagator(
        [
            TraceContextTextMapPropagator(),
            W3CBaggagePropagator(),
        ]
    )
    set_global_textmap(propagator)
    logger.debug("Configured W3C Trace Context and Baggage propagators")
    return propagator


def inject_context(
    carrier: dict[str, str],
    ctx: Context | None = None,
) -> dict[str, str]:
    """Inject trace context and baggage headers into ``carrier``.

    Args:
        carrier: Mutable dictionary to inject headers into.
        ctx: Context to inject. Uses the current context if not provided.

    Returns:
        The carrier with injected headers.
    """
    get_global_textmap().inject(carrier, context=ctx)
    return carrier


def extract_context(carrier: dict[str, str]) -> Context:
    """Extract trace context and baggage from ``carrier``.

    Examples:
        >>> carrier = {
        ...     "traceparent": "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01",
        ... }
        >>> ctx = extract_context(carrier)
    """
    return get_global_textmap().extract(carrier)


def get_trace_id() -> str | None:
    """Current trace ID as a 32-character hex string, or None."""
    span_ctx = trace.get_current_span().get_span_context()
    if span_ctx.is_valid:
        return format(span_ctx.trace_id, "032x")
    return None


def get_span_id() -> str | None:
    """Current span ID as a 16-character hex string, or None."""
    span_ctx = trace.get_current_span().get_span_context()
    if span_ctx.is_valid:
        return format(span_ctx.span_id, "016x")
    return None


__all__ = [
    "configure_propagators",
    "extract_context",
    "get_span_id",
    "get_trace_id",
    "inject_context",
]
