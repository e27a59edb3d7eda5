"""Exception hierarchy shared by the configurator, detector and container."""

from __future__ import annotations


class ContainerError(RuntimeError):
    """Base error for OceanBase container failures."""


class InvalidConfigurationError(ContainerError, ValueError):
    """Raised when a configuration value violates an invariant."""


class IllegalStateError(ContainerError):
    """Raised when an operation is invoked in the wrong lifecycle phase."""


class StartupError(ContainerError):
    """Raised when the instance never became usable."""


class StartFailureError(StartupError):
    """Raised when the runtime cannot create or launch the instance."""


class ReadinessTimeoutError(StartupError):
    """Raised when the boot marker is not observed before the deadline."""


class StreamClosedError(StartupError):
    """Raised when the output stream ends before the boot marker appears."""


class PortNotExposedError(ContainerError, LookupError):
    """Raised when a port that was never exposed is requested.

    This indicates a bug in the calling code rather than a user error.
    """


__all__ = [
    "ContainerError",
    "IllegalStateError",
    "InvalidConfigurationError",
    "PortNotExposedError",
    "ReadinessTimeoutError",
    "StartFailureError",
    "StartupError",
    "StreamClosedError",
]
