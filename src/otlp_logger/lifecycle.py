"""Logger lifecycle: ownership and shutdown of the signal providers.

The Logger returned by initialization exclusively owns the trace, metrics
and log providers (remote mode) or nothing (console-only mode). Shutdown
flushes and releases every provider, collecting failures instead of stopping
at the first one, and is idempotent.

If the Logger is garbage collected or the interpreter exits without an
explicit ``shutdown()``, a ``weakref.finalize`` hook runs it once. Prefer
an explicit call or the context manager form; abrupt termination
(``os._exit``, SIGKILL) still loses buffered telemetry.

Example:
    >>> with otlp_logger.init() as logger:
    ...     run_application()
"""

from __future__ import annotations

import threading
import weakref
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Protocol, Union

import structlog

from otlp_logger.errors import AlreadyShutdownError, ShutdownError, SignalFailure

if TYPE_CHECKING:
    from types import TracebackType

logger = structlog.get_logger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT_MILLIS = 30000


class _Provider(Protocol):
    def force_flush(self, timeout_millis: int = ...) -> bool: ...

    def shutdown(self) -> object: ...


class HandleState(Enum):
    """Provider handle lifecycle states."""

    ACTIVE = auto()
    SHUT_DOWN = auto()


class ProviderHandle:
    """Exclusive owner of one signal's SDK provider.

    Attributes:
        signal: Signal name ("traces", "metrics" or "logs").
        provider: The owned SDK provider.
    """

    def __init__(self, signal: str, provider: _Provider) -> None:
        self._signal = signal
        self._provider = provider
        self._state = HandleState.ACTIVE
        self._lock = threading.Lock()

    @property
    def signal(self) -> str:
        return self._signal

    @property
    def provider(self) -> _Provider:
        return self._provider

    @property
    def is_shut_down(self) -> bool:
        return self._state is HandleState.SHUT_DOWN

    def shutdown(
        self,
        timeout_millis: int = DEFAULT_SHUTDOWN_TIMEOUT_MILLIS,
    ) -> list[SignalFailure]:
        """Flush pending data, then release the provider.

        The release is attempted even when the flush fails.

        Args:
            timeout_millis: Maximum time to wait for the flush.

        Returns:
            At most one failure covering both steps; empty on success.

        Raises:
            AlreadyShutdownError: If this handle was already shut down.
        """
        with self._lock:
            if self._state is HandleState.SHUT_DOWN:
                raise AlreadyShutdownError(self._signal)
            self._state = HandleState.SHUT_DOWN

        errors: dict[str, str] = {}
        try:
            if self._provider.force_flush(timeout_millis) is False:
                errors["flush"] = f"timed out after {timeout_millis}ms"
        except Exception as e:
            errors["flush"] = str(e)

        try:
            self._provider.shutdown()
        except Exception as e:
            errors["release"] = str(e)

        if not errors:
            return []
        # One entry per provider, even when both steps failed.
        return [SignalFailure(self._signal, " and ".join(errors), "; ".join(errors.values()))]

    def __repr__(self) -> str:
        return f"ProviderHandle(signal={self._signal!r}, state={self._state.name})"


@dataclass(frozen=True)
class WithEndpoint:
    """Remote mode: owns the three provider handles."""

    traces: ProviderHandle
    metrics: ProviderHandle
    logs: ProviderHandle

    @property
    def handles(self) -> tuple[ProviderHandle, ...]:
        return (self.traces, self.metrics, self.logs)

    def shutdown(self) -> ShutdownError | None:
        """Shut down every handle, aggregating non-fatal failures.

        Returns:
            A ShutdownError describing every failure, or None.
        """
        failures: list[SignalFailure] = []
        for handle in self.handles:
            try:
                failures.extend(handle.shutdown())
            except AlreadyShutdownError:
                continue

        if not failures:
            logger.info("telemetry_shutdown")
            return None

        error = ShutdownError(failures)
        logger.warning(
            "telemetry_shutdown_failed",
            failures=[f"{f.signal} {f.operation}: {f.error}" for f in failures],
        )
        return error


@dataclass(frozen=True)
class StdoutOnly:
    """Console-only mode: owns no remote resources."""

    def shutdown(self) -> ShutdownError | None:
        return None


LoggerMode = Union[WithEndpoint, StdoutOnly]


class LoggerState(Enum):
    """Logger lifecycle states.

    States:
        ACTIVE: Providers live, telemetry flowing
        SHUTTING_DOWN: Flush and release in progress
        SHUT_DOWN: Terminal; further shutdown calls are no-ops
    """

    ACTIVE = auto()
    SHUTTING_DOWN = auto()
    SHUT_DOWN = auto()


def _shutdown_mode(mode: LoggerMode) -> ShutdownError | None:
    return mode.shutdown()


class Logger:
    """Handle returned by initialization.

    Holds either WithEndpoint (remote mode) or StdoutOnly (console-only
    mode) and dispatches shutdown to it. Supports the context manager
    protocol for guaranteed release.

    Attributes:
        mode: The active variant.
        state: Current lifecycle state.
    """

    def __init__(self, mode: LoggerMode) -> None:
        self._mode = mode
        self._state = LoggerState.ACTIVE
        self._lock = threading.Lock()
        # Runs at most once: on explicit shutdown, garbage collection or exit.
        self._finalizer = weakref.finalize(self, _shutdown_mode, mode)

    @property
    def mode(self) -> LoggerMode:
        return self._mode

    @property
    def state(self) -> LoggerState:
        return self._state

    @property
    def is_remote(self) -> bool:
        return isinstance(self._mode, WithEndpoint)

    def shutdown(self) -> ShutdownError | None:
        """Flush and release all owned providers.

        Never raises. Failures are logged and returned as one aggregate.
        Calls after the first are no-ops returning None.

        Returns:
            The aggregated ShutdownError, or None.
        """
        with self._lock:
            if self._state is not LoggerState.ACTIVE:
                return None
            self._state = LoggerState.SHUTTING_DOWN
        try:
            return self._finalizer()
        finally:
            self._state = LoggerState.SHUT_DOWN

    def __enter__(self) -> Logger:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"Logger(mode={type(self._mode).__name__}, state={self._state.name})"


__all__ = [
    "DEFAULT_SHUTDOWN_TIMEOUT_MILLIS",
    "HandleState",
    "Logger",
    "LoggerMode",
    "LoggerState",
    "ProviderHandle",
    "StdoutOnly",
    "WithEndpoint",
]
