"""Exception hierarchy for otlp-logger.

All exceptions inherit from OtlpLoggerError, so callers can catch every
library error with a single except clause.

Exception Hierarchy:
    OtlpLoggerError (base)
    ├── ConfigurationError               # Malformed explicit configuration
    ├── ExportSetupError                 # One signal's exporter/provider failed to build
    ├── RegistryAlreadyInitializedError  # Dispatch fabric already installed
    ├── TryInitError                     # Initialization failed (wraps one of the above)
    ├── ShutdownError                    # One or more providers failed to flush/release
    └── AlreadyShutdownError             # Provider handle already released

Example:
    >>> from otlp_logger.errors import ExportSetupError
    >>> raise ExportSetupError("traces", ValueError("bad endpoint"))
    Traceback (most recent call last):
        ...
    ExportSetupError: Failed to set up traces exporter: bad endpoint
"""

from __future__ import annotations

from dataclasses import dataclass


class OtlpLoggerError(Exception):
    """Base exception for all otlp-logger errors."""

    pass


class ConfigurationError(OtlpLoggerError):
    """Raised when explicit configuration input is malformed.

    Attributes:
        field: Name of the offending configuration field.
        reason: Human-readable description of the problem.

    Example:
        >>> raise ConfigurationError("otlp_endpoint", "missing URL scheme")
        Traceback (most recent call last):
            ...
        ConfigurationError: Invalid configuration for 'otlp_endpoint': missing URL scheme
    """

    def __init__(self, field: str, reason: str) -> None:
        """Initialize ConfigurationError.

        Args:
            field: Name of the offending configuration field.
            reason: Human-readable description of the problem.
        """
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration for '{field}': {reason}")


class ExportSetupError(OtlpLoggerError):
    """Raised when a signal's exporter or provider cannot be constructed.

    Attributes:
        signal: The signal that failed ("traces", "metrics" or "logs").
        cause: The underlying construction error.
    """

    def __init__(self, signal: str, cause: BaseException) -> None:
        """Initialize ExportSetupError.

        Args:
            signal: The signal that failed.
            cause: The underlying construction error.
        """
        self.signal = signal
        self.cause = cause
        super().__init__(f"Failed to set up {signal} exporter: {cause}")


class RegistryAlreadyInitializedError(OtlpLoggerError):
    """Raised when a dispatch fabric is already installed in this process."""

    def __init__(self) -> None:
        super().__init__(
            "A telemetry dispatch fabric is already installed in this process"
        )


class TryInitError(OtlpLoggerError):
    """Raised when initialization fails.

    Attributes:
        msg: Context describing which step failed.
        source: The underlying library error.
    """

    def __init__(self, msg: str, source: OtlpLoggerError) -> None:
        self.msg = msg
        self.source = source
        super().__init__(f"Error initializing OtlpLogger: {msg}")


@dataclass(frozen=True)
class SignalFailure:
    """A provider's shutdown failure.

    ``operation`` names the failed step(s): "flush", "release" or
    "flush and release".
    """

    signal: str
    operation: str
    error: str


class ShutdownError(OtlpLoggerError):
    """Aggregate of provider failures collected during shutdown.

    Never raised by Logger.shutdown(); it is logged and returned so that
    one failing exporter cannot prevent the others from flushing.

    Attributes:
        failures: One entry per failed provider.
    """

    def __init__(self, failures: list[SignalFailure]) -> None:
        self.failures = list(failures)
        details = "; ".join(
            f"{f.signal} {f.operation}: {f.error}" for f in self.failures
        )
        super().__init__(
            f"{len(self.failures)} provider(s) failed during shutdown: {details}"
        )


class AlreadyShutdownError(OtlpLoggerError):
    """Raised when a provider handle is shut down a second time."""

    def __init__(self, signal: str) -> None:
        self.signal = signal
        super().__init__(f"{signal} provider is already shut down")


__all__ = [
    "AlreadyShutdownError",
    "ConfigurationError",
    "ExportSetupError",
    "OtlpLoggerError",
    "RegistryAlreadyInitializedError",
    "ShutdownError",
    "SignalFailure",
    "TryInitError",
]
