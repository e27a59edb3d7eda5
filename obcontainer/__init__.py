"""Ephemeral OceanBase instances for integration tests."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Settings, load_settings
from .configurator import InstanceConfigurator
from .container import OceanBaseContainer
from .descriptor import ConnectionDescriptor, ConnectionDescriptorBuilder
from .dialects import DialectInfo, DialectSelector
from .errors import (
    ContainerError,
    IllegalStateError,
    InvalidConfigurationError,
    PortNotExposedError,
    ReadinessTimeoutError,
    StartFailureError,
    StartupError,
    StreamClosedError,
)
from .models import (
    RPC_PORT,
    SQL_PORT,
    DeploymentMode,
    Dialect,
    InstanceHandle,
    NetworkMode,
    PortBinding,
    ReadinessState,
)
from .ports import PortResolver
from .readiness import LoggingConsumer, ReadinessDetector
from .runtime import DockerRuntime, InstanceRuntime, ScriptedRuntime

__all__ = [
    "ConnectionDescriptor",
    "ConnectionDescriptorBuilder",
    "ContainerError",
    "DeploymentMode",
    "Dialect",
    "DialectInfo",
    "DialectSelector",
    "DockerRuntime",
    "IllegalStateError",
    "InstanceConfigurator",
    "InstanceHandle",
    "InstanceRuntime",
    "InvalidConfigurationError",
    "LoggingConsumer",
    "NetworkMode",
    "OceanBaseContainer",
    "PortBinding",
    "PortNotExposedError",
    "PortResolver",
    "RPC_PORT",
    "ReadinessDetector",
    "ReadinessState",
    "ReadinessTimeoutError",
    "SQL_PORT",
    "ScriptedRuntime",
    "Settings",
    "StartFailureError",
    "StartupError",
    "StreamClosedError",
    "__version__",
    "load_settings",
]
