"""Resource assembly: what produced this telemetry.

The resource is built once per initialization from automatic detectors plus
the service identity fields of the configuration, then shared read-only by
the trace, metrics and log providers.

Merge order (later sources overwrite earlier ones on key collision):

1. SDK-provided defaults (``service.name = unknown_service``)
2. Telemetry library identity (``telemetry.sdk.*``)
3. Operating system (``os.type``)
4. Process (``process.command_args``, ``process.pid``, ``process.executable.path``)
5. ``OTEL_RESOURCE_ATTRIBUTES``
6. Explicit configuration (service identity, deployment environment)
"""

from __future__ import annotations

import logging
import os
import platform
import sys
from collections.abc import Callable, Mapping
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Union
from urllib.parse import unquote

from opentelemetry.sdk.resources import (
    OS_TYPE,
    PROCESS_COMMAND_ARGS,
    PROCESS_EXECUTABLE_PATH,
    PROCESS_PID,
    SERVICE_INSTANCE_ID,
    SERVICE_NAME,
    SERVICE_NAMESPACE,
    SERVICE_VERSION,
    TELEMETRY_SDK_LANGUAGE,
    TELEMETRY_SDK_NAME,
    TELEMETRY_SDK_VERSION,
    Resource,
)

if TYPE_CHECKING:
    from otlp_logger.config import OtlpConfig

logger = logging.getLogger(__name__)

DEPLOYMENT_ENVIRONMENT_NAME = "deployment.environment.name"
RESOURCE_ATTRIBUTES_ENV_VAR = "OTEL_RESOURCE_ATTRIBUTES"

AttributeValue = Union[str, int, tuple[str, ...]]
Attributes = dict[str, AttributeValue]


def detect_sdk() -> Attributes:
    """Defaults the SDK provides when the user supplies nothing."""
    return {SERVICE_NAME: "unknown_service"}


def detect_telemetry() -> Attributes:
    """Identity of the telemetry SDK in use."""
    try:
        sdk_version = version("opentelemetry-sdk")
    except PackageNotFoundError:
        sdk_version = "unknown"
    return {
        TELEMETRY_SDK_NAME: "opentelemetry",
        TELEMETRY_SDK_LANGUAGE: "python",
        TELEMETRY_SDK_VERSION: sdk_version,
    }


def detect_os() -> Attributes:
    return {OS_TYPE: platform.system().lower()}


def _executable_path() -> str:
    # sys.executable may be empty or unresolvable in embedded/sandboxed interpreters
    try:
        return os.path.realpath(sys.executable) if sys.executable else ""
    except (OSError, ValueError):
        return ""


def detect_process(
    executable_path: Callable[[], str] = _executable_path,
) -> Attributes:
    """Process attributes: command line, PID and executable path.

    Args:
        executable_path: Callable returning the executable path. A failure
            results in an empty string rather than aborting resource assembly.

    Returns:
        Process attributes.
    """
    try:
        path = executable_path()
    except OSError:
        path = ""
    return {
        PROCESS_COMMAND_ARGS: tuple(sys.argv),
        PROCESS_PID: os.getpid(),
        PROCESS_EXECUTABLE_PATH: path,
    }


def detect_env(environ: Mapping[str, str] | None = None) -> Attributes:
    """Parse ``OTEL_RESOURCE_ATTRIBUTES`` (``key=value,key2=value2``).

    Values are URL-decoded. Malformed pairs are skipped.
    """
    env = os.environ if environ is None else environ
    raw = env.get(RESOURCE_ATTRIBUTES_ENV_VAR, "").strip()
    attributes: Attributes = {}
    if not raw:
        return attributes
    for pair in raw.split(","):
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.debug("Skipping malformed resource attribute", extra={"pair": pair})
            continue
        attributes[key] = unquote(value.strip())
    return attributes


def explicit_attributes(config: OtlpConfig) -> Attributes:
    """Attributes for the service identity fields that are set."""
    fields = {
        SERVICE_NAME: config.service_name,
        SERVICE_NAMESPACE: config.service_namespace,
        SERVICE_VERSION: config.service_version,
        SERVICE_INSTANCE_ID: config.service_instance_id,
        DEPLOYMENT_ENVIRONMENT_NAME: config.deployment_environment,
    }
    return {key: value for key, value in fields.items() if value is not None}


def build_resource(
    config: OtlpConfig,
    environ: Mapping[str, str] | None = None,
) -> Resource:
    """Assemble the resource shared by all providers.

    Args:
        config: Configuration supplying explicit service identity.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        The merged Resource.
    """
    attributes: Attributes = {}
    for source in (
        detect_sdk(),
        detect_telemetry(),
        detect_os(),
        detect_process(),
        detect_env(environ),
        explicit_attributes(config),
    ):
        attributes.update(source)
    return Resource(attributes)


__all__ = [
    "DEPLOYMENT_ENVIRONMENT_NAME",
    "RESOURCE_ATTRIBUTES_ENV_VAR",
    "build_resource",
    "detect_env",
    "detect_os",
    "detect_process",
    "detect_sdk",
    "detect_telemetry",
    "explicit_attributes",
]
