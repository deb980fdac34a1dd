"""Severity filters for the telemetry sinks.

Every sink (traces, metrics, logs, console) carries its own EffectiveFilter:
a default LevelFilter plus optional per-target directives keyed by dotted
logger-name prefix. Filters are resolved independently per sink; the only
coupling is that the console sink falls back to the log sink's explicit level.

Directive grammar (comma separated, as read from ``OTLP_LOG``):

- ``info``: default level for every target
- ``my_app.db=debug``: level for the ``my_app.db`` logger and its children
- ``my_app.db``: shorthand for ``my_app.db=trace``

Example:
    >>> f = resolve(None, "warn,my_app.db=debug")
    >>> f.enabled("my_app.db.pool", logging.DEBUG)
    True
    >>> f.enabled("my_app.web", logging.INFO)
    False
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from otlp_logger.config import OtlpConfig

# Environment variable holding the default filter directive string.
FILTER_ENV_VAR = "OTLP_LOG"

# Level used when neither an explicit level nor a directive string is set.
DEFAULT_DIRECTIVE = "error"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_TARGET_PATTERN = re.compile(r"^[A-Za-z_][\w.\-]*$")


class LevelFilter(str, Enum):
    """Minimum severity a sink accepts, ordered OFF < ERROR < ... < TRACE."""

    OFF = "off"
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
    TRACE = "trace"

    @property
    def verbosity(self) -> int:
        """Position in the OFF..TRACE ordering (OFF is 0)."""
        return _ORDER.index(self)

    @property
    def threshold(self) -> int | None:
        """Lowest stdlib logging level that passes, or None for OFF."""
        return _THRESHOLDS[self]

    def enables(self, levelno: int) -> bool:
        """Check whether a record at ``levelno`` passes this level."""
        threshold = self.threshold
        return threshold is not None and levelno >= threshold

    @classmethod
    def parse(cls, value: LevelFilter | str | int) -> LevelFilter:
        """Parse a level name or stdlib logging level number.

        Args:
            value: A LevelFilter, a case-insensitive level name
                (``warning`` and ``critical`` are accepted), or a stdlib
                logging level number.

        Returns:
            The matching LevelFilter.

        Raises:
            ValueError: If the value does not name a level.
        """
        if isinstance(value, LevelFilter):
            return value
        if isinstance(value, int):
            return _from_levelno(value)
        name = value.strip().lower()
        name = _ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"unknown level {value!r}") from None


_ORDER = [
    LevelFilter.OFF,
    LevelFilter.ERROR,
    LevelFilter.WARN,
    LevelFilter.INFO,
    LevelFilter.DEBUG,
    LevelFilter.TRACE,
]

_THRESHOLDS: dict[LevelFilter, int | None] = {
    LevelFilter.OFF: None,
    LevelFilter.ERROR: logging.ERROR,
    LevelFilter.WARN: logging.WARNING,
    LevelFilter.INFO: logging.INFO,
    LevelFilter.DEBUG: logging.DEBUG,
    LevelFilter.TRACE: TRACE,
}

_ALIASES = {"warning": "warn", "critical": "error", "fatal": "error", "none": "off"}


def _from_levelno(levelno: int) -> LevelFilter:
    if levelno >= logging.ERROR:
        return LevelFilter.ERROR
    if levelno >= logging.WARNING:
        return LevelFilter.WARN
    if levelno >= logging.INFO:
        return LevelFilter.INFO
    if levelno >= logging.DEBUG:
        return LevelFilter.DEBUG
    return LevelFilter.TRACE


@dataclass(frozen=True)
class Directive:
    """Per-target level override."""

    target: str
    level: LevelFilter

    def matches(self, name: str) -> bool:
        return name == self.target or name.startswith(self.target + ".")


@dataclass(frozen=True)
class EffectiveFilter:
    """Resolved filter for one sink.

    Usable directly as a stdlib logging filter via ``filter(record)``.

    Attributes:
        default: Level applied to targets without a matching directive.
        directives: Per-target overrides, most specific first.
        invalid: Directive strings that could not be parsed and were skipped.
    """

    default: LevelFilter
    directives: tuple[Directive, ...] = ()
    invalid: tuple[str, ...] = field(default=(), compare=False)

    def level_for(self, target: str | None) -> LevelFilter:
        """Return the level that applies to ``target``.

        The longest matching directive prefix wins.
        """
        if target:
            for directive in self.directives:
                if directive.matches(target):
                    return directive.level
        return self.default

    def enabled(self, target: str | None, levelno: int) -> bool:
        """Check whether an event from ``target`` at ``levelno`` passes."""
        return self.level_for(target).enables(levelno)

    def filter(self, record: logging.LogRecord) -> bool:
        return self.enabled(record.name, record.levelno)

    @property
    def max_level(self) -> LevelFilter:
        """Most verbose level this filter can let through."""
        levels = [self.default, *(d.level for d in self.directives)]
        return max(levels, key=lambda level: level.verbosity)

    def __str__(self) -> str:
        parts = [self.default.value]
        parts.extend(f"{d.target}={d.level.value}" for d in self.directives)
        return ",".join(parts)


def parse_directives(text: str | None) -> EffectiveFilter:
    """Parse a directive string into an EffectiveFilter.

    Invalid directives are skipped and kept on ``EffectiveFilter.invalid``.
    An empty or missing string yields the ``error`` default.

    Args:
        text: Comma separated directive string.

    Returns:
        The parsed filter.
    """
    default = LevelFilter.ERROR
    targets: dict[str, LevelFilter] = {}
    invalid: list[str] = []

    for raw in (text or DEFAULT_DIRECTIVE).split(","):
        part = raw.strip()
        if not part:
            continue
        if "=" in part:
            target, _, level_name = part.partition("=")
            target = target.strip()
            if not _TARGET_PATTERN.match(target):
                invalid.append(part)
                continue
            try:
                targets[target] = LevelFilter.parse(level_name)
            except ValueError:
                invalid.append(part)
            continue
        try:
            default = LevelFilter.parse(part)
        except ValueError:
            if _TARGET_PATTERN.match(part):
                targets[part] = LevelFilter.TRACE
            else:
                invalid.append(part)

    directives = tuple(
        Directive(target, level)
        for target, level in sorted(targets.items(), key=lambda kv: -len(kv[0]))
    )
    return EffectiveFilter(default=default, directives=directives, invalid=tuple(invalid))


def env_filter_directive(environ: Mapping[str, str] | None = None) -> str:
    """Read the default directive string from the environment.

    Args:
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        The directive string, or ``"error"`` when unset or blank.
    """
    env = os.environ if environ is None else environ
    value = env.get(FILTER_ENV_VAR, "").strip()
    return value or DEFAULT_DIRECTIVE


def resolve(explicit_level: LevelFilter | None, env_default: str | None) -> EffectiveFilter:
    """Compute the effective filter for one sink.

    An explicit level wins outright and ignores any per-target directives
    from the environment; otherwise the environment directive string is parsed.

    Args:
        explicit_level: Level set in configuration, if any.
        env_default: Environment-driven directive string.

    Returns:
        The resolved EffectiveFilter.
    """
    if explicit_level is not None:
        return EffectiveFilter(default=explicit_level)
    return parse_directives(env_default)


@dataclass(frozen=True)
class SinkFilters:
    """Resolved filters for all four sinks."""

    trace: EffectiveFilter
    metrics: EffectiveFilter
    log: EffectiveFilter
    stdout: EffectiveFilter

    @property
    def invalid_directives(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for f in (self.trace, self.metrics, self.log, self.stdout):
            for item in f.invalid:
                seen.setdefault(item, None)
        return tuple(seen)


def resolve_sink_filters(config: OtlpConfig, env_default: str | None) -> SinkFilters:
    """Resolve every sink's filter from configuration.

    The console sink uses ``stdout_level`` when set, else ``log_level``,
    else the environment directive.

    Args:
        config: The (environment-merged) configuration.
        env_default: Environment-driven directive string.

    Returns:
        SinkFilters with one independent filter per sink.
    """
    stdout_level = config.stdout_level if config.stdout_level is not None else config.log_level
    return SinkFilters(
        trace=resolve(config.trace_level, env_default),
        metrics=resolve(config.metrics_level, env_default),
        log=resolve(config.log_level, env_default),
        stdout=resolve(stdout_level, env_default),
    )


__all__ = [
    "DEFAULT_DIRECTIVE",
    "FILTER_ENV_VAR",
    "TRACE",
    "Directive",
    "EffectiveFilter",
    "LevelFilter",
    "SinkFilters",
    "env_filter_directive",
    "parse_directives",
    "resolve",
    "resolve_sink_filters",
]
