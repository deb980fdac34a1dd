"""Level-aware spans.

Spans opened through ``create_span`` or ``@traced`` carry a severity level
and a target, and are only recorded when the installed trace filter enables
that ``(target, level)`` pair. Otherwise a non-recording span is yielded, so
instrumented code runs unchanged whatever the configured verbosity.

Before initialization, or in console-only mode, every span is non-recording.

Example:
    >>> with create_span("load_orders", level=logging.DEBUG, target="shop.db") as span:
    ...     span.set_attribute("rows", 42)
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, overload

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from otlp_logger.dispatch import installed_fabric

if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.trace import Span, Tracer

P = ParamSpec("P")
R = TypeVar("R")

LEVEL_ATTRIBUTE = "level"
TARGET_ATTRIBUTE = "target"


def gated_tracer(level: int, target: str | None = None) -> Tracer | None:
    """Return the installed tracer if the trace filter enables the span.

    Args:
        level: Stdlib logging level of the span.
        target: Dotted target name matched against filter directives.

    Returns:
        The fabric's tracer, or None when the span should not be recorded.
    """
    fabric = installed_fabric()
    if fabric is None or fabric.tracer is None:
        return None
    if not fabric.trace_filter.enabled(target, level):
        return None
    return fabric.tracer


def _record_error(span: Span, error: Exception) -> None:
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.set_attribute("exception.type", type(error).__name__)
    span.set_attribute("exception.message", str(error))


@contextmanager
def create_span(
    name: str,
    level: int = logging.INFO,
    target: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Open a span gated by the trace filter.

    Nested calls create parent-child relationships. A span filtered out by
    level yields a non-recording span carrying the current context, so
    enabled descendants still attach to the nearest recorded ancestor.

    Args:
        name: The span name.
        level: Stdlib logging level of the span (``logging.INFO`` by default).
        target: Dotted target name for directive matching.
        attributes: Optional attributes to set on the span.

    Yields:
        The created span, recording or not.

    Raises:
        Exception: Any exception raised in the block is re-raised after the
            span status is set to ERROR.
    """
    tracer = gated_tracer(level, target)
    if tracer is None:
        yield trace.NonRecordingSpan(trace.get_current_span().get_span_context())
        return

    with tracer.start_as_current_span(
        name,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        span.set_attribute(LEVEL_ATTRIBUTE, logging.getLevelName(level))
        if target:
            span.set_attribute(TARGET_ATTRIBUTE, target)
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            _record_error(span, e)
            raise


@overload
def traced(func: Callable[P, R]) -> Callable[P, R]: ...


@overload
def traced(
    *,
    name: str | None = None,
    level: int = logging.INFO,
    target: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]: ...


def traced(
    func: Callable[P, R] | None = None,
    *,
    name: str | None = None,
    level: int = logging.INFO,
    target: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[P, R] | Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorator wrapping each call of a function in a level-gated span.

    Can be used with or without arguments:
        @traced
        def handle(): ...

        @traced(name="db.query", level=logging.DEBUG)
        def query(): ...

    Args:
        func: The function to decorate (when used without parentheses).
        name: Span name, defaults to the function name.
        level: Stdlib logging level of the span.
        target: Target for directive matching, defaults to the function's module.
        attributes: Static attributes set on every span.

    Returns:
        The decorated function.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        span_name = name if name is not None else fn.__name__
        span_target = target if target is not None else fn.__module__

        if asyncio.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Any:
                with create_span(span_name, level, span_target, attributes):
                    return await fn(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(fn)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with create_span(span_name, level, span_target, attributes):
                return fn(*args, **kwargs)

        return sync_wrapper

    if func is not None:
        return decorator(func)
    return decorator


__all__ = ["create_span", "gated_tracer", "traced"]
