"""Shared constants, enums and dataclasses for the OceanBase container."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .errors import InvalidConfigurationError

SQL_PORT = 2881
RPC_PORT = 2882
EXPOSED_PORTS: tuple[int, ...] = (SQL_PORT, RPC_PORT)

SYSTEM_TENANT = "sys"
ROOT_USER = "root"
DEFAULT_TENANT_NAME = "test"
DEFAULT_DATABASE_NAME = "test"
DEFAULT_ROOT_PASSWORD = ""

DEFAULT_IMAGE = "oceanbase/oceanbase-ce"
DEFAULT_STARTUP_TIMEOUT = 240.0
BOOT_SUCCESS_PATTERN = r".*boot success!.*"

MODE_ENV = "MODE"
TENANT_NAME_ENV = "OB_TENANT_NAME"
ROOT_PASSWORD_ENV = "OB_TENANT_PASSWORD"


class DeploymentMode(str, Enum):
    """Resource footprint the instance boots with."""

    NORMAL = "normal"
    MINI = "mini"
    SLIM = "slim"

    @classmethod
    def parse(cls, value: str | None) -> DeploymentMode:
        """Parse a mode name, ignoring case and surrounding whitespace."""

        text = (value or "").strip().lower()
        if not text:
            raise InvalidConfigurationError("Mode cannot be empty")
        try:
            return cls(text)
        except ValueError:
            choices = ", ".join(mode.value for mode in cls)
            raise InvalidConfigurationError(f"Unknown mode '{value}', expected one of: {choices}") from None


DEFAULT_MODE = DeploymentMode.SLIM


class NetworkMode(str, Enum):
    """Network isolation reported by the runtime for an instance."""

    BRIDGE = "bridge"
    HOST = "host"
    NONE = "none"
    CUSTOM = "custom"

    @classmethod
    def from_runtime(cls, value: str | None) -> NetworkMode:
        text = (value or "").strip().lower()
        if text in {"", "default", "bridge"}:
            return cls.BRIDGE
        if text == "host":
            return cls.HOST
        if text == "none":
            return cls.NONE
        return cls.CUSTOM


class Dialect(str, Enum):
    """Wire-protocol conventions the connection URL can target."""

    GENERIC = "generic"
    NATIVE = "native"


class ReadinessState(str, Enum):
    """Progress of the boot-marker wait; transitions only move forward."""

    NOT_STARTED = "not_started"
    WAITING = "waiting"
    READY = "ready"
    TIMED_OUT = "timed_out"
    STREAM_CLOSED = "stream_closed"

    @property
    def terminal(self) -> bool:
        return self in {ReadinessState.READY, ReadinessState.TIMED_OUT, ReadinessState.STREAM_CLOSED}


@dataclass(frozen=True, slots=True)
class InstanceHandle:
    """Opaque reference to an instance created by a runtime."""

    id: str
    image: str
    name: str | None = None
    details: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class PortBinding:
    """Logical port paired with the port reachable from the caller."""

    logical_port: int
    mapped_port: int | None = None

    @property
    def resolved_port(self) -> int:
        if self.mapped_port is None:
            return self.logical_port
        return self.mapped_port


__all__ = [
    "BOOT_SUCCESS_PATTERN",
    "DEFAULT_DATABASE_NAME",
    "DEFAULT_IMAGE",
    "DEFAULT_MODE",
    "DEFAULT_ROOT_PASSWORD",
    "DEFAULT_STARTUP_TIMEOUT",
    "DEFAULT_TENANT_NAME",
    "Dialect",
    "DeploymentMode",
    "EXPOSED_PORTS",
    "InstanceHandle",
    "MODE_ENV",
    "NetworkMode",
    "PortBinding",
    "ROOT_PASSWORD_ENV",
    "ROOT_USER",
    "RPC_PORT",
    "ReadinessState",
    "SQL_PORT",
    "SYSTEM_TENANT",
    "TENANT_NAME_ENV",
]
