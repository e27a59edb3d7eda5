"""Translate logical service ports into ports a test process can dial."""

from __future__ import annotations

from typing import Sequence

from .errors import PortNotExposedError
from .models import EXPOSED_PORTS, InstanceHandle, NetworkMode, PortBinding
from .runtime import InstanceRuntime


class PortResolver:
    """Resolves exposed ports of a started instance.

    In host-network mode the logical port is already reachable, so any mapped
    port the runtime reports is ignored.
    """

    def __init__(
        self,
        runtime: InstanceRuntime,
        handle: InstanceHandle,
        exposed_ports: Sequence[int] = EXPOSED_PORTS,
    ) -> None:
        self._runtime = runtime
        self._handle = handle
        self._exposed_ports = tuple(exposed_ports)

    @property
    def exposed_ports(self) -> tuple[int, ...]:
        return self._exposed_ports

    @property
    def host_network(self) -> bool:
        return self._runtime.network_mode(self._handle) is NetworkMode.HOST

    def resolve(self, logical_port: int) -> int:
        """Return the port to dial for ``logical_port``."""

        return self.binding(logical_port).resolved_port

    def binding(self, logical_port: int) -> PortBinding:
        if logical_port not in self._exposed_ports:
            raise PortNotExposedError(
                f"Port {logical_port} was never exposed (exposed: {', '.join(map(str, self._exposed_ports))})"
            )
        if self.host_network:
            return PortBinding(logical_port=logical_port)
        return PortBinding(
            logical_port=logical_port,
            mapped_port=self._runtime.mapped_port(self._handle, logical_port),
        )

    def bindings(self) -> tuple[PortBinding, ...]:
        """Bindings for every exposed port, in declaration order."""

        return tuple(self.binding(port) for port in self._exposed_ports)


__all__ = ["PortResolver"]
