"""Instance runtimes the container orchestrates."""

from __future__ import annotations

import itertools
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Protocol, Sequence, runtime_checkable
from urllib.parse import urlparse

import docker
from docker.errors import DockerException, NotFound

from .errors import IllegalStateError, PortNotExposedError, StartFailureError
from .models import InstanceHandle, NetworkMode

LOG = logging.getLogger(__name__)

HOST_OVERRIDE_ENV = "TC_HOST"


@runtime_checkable
class InstanceRuntime(Protocol):
    """Capabilities required from whatever hosts the database instance."""

    def create(
        self,
        image: str,
        exposed_ports: Sequence[int],
        environment: Mapping[str, str],
        *,
        network_mode: NetworkMode | None = None,
    ) -> InstanceHandle:
        """Create (but do not start) an isolated instance."""

    def start(self, handle: InstanceHandle) -> None:
        """Launch the instance process; raises ``StartFailureError``."""

    def mapped_port(self, handle: InstanceHandle, port: int) -> int:
        """Return the externally reachable port bound to ``port``."""

    def network_mode(self, handle: InstanceHandle) -> NetworkMode:
        """Return the network isolation mode of the instance."""

    def host(self, handle: InstanceHandle) -> str:
        """Return the hostname a test process dials."""

    def stream_output(self, handle: InstanceHandle) -> Iterator[str] | Iterator[bytes]:
        """Stream the instance output from creation until the process exits."""

    def stop(self, handle: InstanceHandle) -> None:
        """Stop the instance process."""

    def destroy(self, handle: InstanceHandle) -> None:
        """Release every resource held by the instance."""


class DockerRuntime:
    """Runtime backed by the Docker Engine via the Docker SDK."""

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        *,
        stop_timeout: int = 10,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        self._client = client
        self._stop_timeout = stop_timeout
        self._labels = dict(labels or {"org.oceanbase.obcontainer": "true"})

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as exc:
                raise StartFailureError(f"Docker is not available: {exc}") from exc
        return self._client

    def create(
        self,
        image: str,
        exposed_ports: Sequence[int],
        environment: Mapping[str, str],
        *,
        network_mode: NetworkMode | None = None,
    ) -> InstanceHandle:
        kwargs: dict[str, object] = {
            "image": image,
            "detach": True,
            "environment": dict(environment),
            "labels": dict(self._labels),
        }
        if network_mode is NetworkMode.HOST:
            kwargs["network_mode"] = "host"
        else:
            kwargs["ports"] = {f"{port}/tcp": None for port in exposed_ports}
        try:
            container = self.client.containers.create(**kwargs)
        except DockerException as exc:
            raise StartFailureError(f"Failed to create container from '{image}': {exc}") from exc
        LOG.debug("Created container", extra={"container": container.id, "image": image})
        return InstanceHandle(id=container.id, image=image, name=getattr(container, "name", None))

    def start(self, handle: InstanceHandle) -> None:
        try:
            self._container(handle).start()
        except DockerException as exc:
            raise StartFailureError(f"Failed to start container {handle.id[:12]}: {exc}") from exc
        LOG.info("Started container", extra={"container": handle.id, "image": handle.image})

    def mapped_port(self, handle: InstanceHandle, port: int) -> int:
        container = self._container(handle)
        container.reload()
        ports = container.attrs.get("NetworkSettings", {}).get("Ports") or {}
        bindings = ports.get(f"{port}/tcp")
        if not bindings:
            raise PortNotExposedError(f"Port {port} is not mapped for container {handle.id[:12]}")
        return int(bindings[0]["HostPort"])

    def network_mode(self, handle: InstanceHandle) -> NetworkMode:
        container = self._container(handle)
        mode = container.attrs.get("HostConfig", {}).get("NetworkMode")
        return NetworkMode.from_runtime(mode)

    def host(self, handle: InstanceHandle) -> str:
        override = os.environ.get(HOST_OVERRIDE_ENV)
        if override:
            return override
        base_url = getattr(self.client.api, "base_url", "") or ""
        parsed = urlparse(base_url)
        if parsed.scheme in {"http", "https", "tcp"} and parsed.hostname:
            if parsed.hostname not in {"localnpipe", "localhost"}:
                return parsed.hostname
        return "localhost"

    def stream_output(self, handle: InstanceHandle) -> Iterator[bytes]:
        return self._container(handle).logs(stream=True, follow=True, stdout=True, stderr=True)

    def stop(self, handle: InstanceHandle) -> None:
        try:
            self._container(handle).stop(timeout=self._stop_timeout)
        except NotFound:
            LOG.debug("Container already gone", extra={"container": handle.id})

    def destroy(self, handle: InstanceHandle) -> None:
        try:
            self._container(handle).remove(force=True, v=True)
        except NotFound:
            LOG.debug("Container already removed", extra={"container": handle.id})
            return
        LOG.info("Removed container", extra={"container": handle.id})

    def _container(self, handle: InstanceHandle):
        return self.client.containers.get(handle.id)


@dataclass(slots=True)
class _ScriptedInstance:
    handle: InstanceHandle
    exposed_ports: tuple[int, ...]
    environment: dict[str, str]
    network_mode: NetworkMode
    mapped_ports: dict[int, int] = field(default_factory=dict)
    started: bool = False
    stopped: bool = False
    destroyed: bool = False


class ScriptedRuntime:
    """In-memory runtime that replays scripted output lines.

    Useful for tests and demos: ports are assigned from ``base_port`` upward,
    and ``stream_output`` yields ``output`` with an optional per-line delay.
    """

    def __init__(
        self,
        output: Sequence[str] = ("boot success!",),
        *,
        host: str = "localhost",
        base_port: int = 32768,
        line_delay: float = 0.0,
        fail_on_start: bool = False,
        reported_network_mode: NetworkMode | None = None,
    ) -> None:
        self._output = tuple(output)
        self._host = host
        self._ports = itertools.count(base_port)
        self._line_delay = line_delay
        self._fail_on_start = fail_on_start
        self._reported_network_mode = reported_network_mode
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.instances: dict[str, _ScriptedInstance] = {}

    def create(
        self,
        image: str,
        exposed_ports: Sequence[int],
        environment: Mapping[str, str],
        *,
        network_mode: NetworkMode | None = None,
    ) -> InstanceHandle:
        with self._lock:
            handle = InstanceHandle(id=f"scripted-{next(self._ids)}", image=image)
            self.instances[handle.id] = _ScriptedInstance(
                handle=handle,
                exposed_ports=tuple(exposed_ports),
                environment=dict(environment),
                network_mode=self._reported_network_mode or network_mode or NetworkMode.BRIDGE,
            )
        return handle

    def start(self, handle: InstanceHandle) -> None:
        instance = self._instance(handle)
        if self._fail_on_start:
            raise StartFailureError(f"Scripted start failure for {handle.id}")
        with self._lock:
            instance.mapped_ports = {port: next(self._ports) for port in instance.exposed_ports}
        instance.started = True

    def mapped_port(self, handle: InstanceHandle, port: int) -> int:
        instance = self._instance(handle)
        if not instance.started:
            raise IllegalStateError(f"Instance {handle.id} has not started")
        try:
            return instance.mapped_ports[port]
        except KeyError:
            raise PortNotExposedError(f"Port {port} is not mapped for {handle.id}") from None

    def network_mode(self, handle: InstanceHandle) -> NetworkMode:
        return self._instance(handle).network_mode

    def host(self, handle: InstanceHandle) -> str:
        return self._host

    def stream_output(self, handle: InstanceHandle) -> Iterator[str]:
        self._instance(handle)
        for line in self._output:
            if self._line_delay:
                time.sleep(self._line_delay)
            yield line

    def stop(self, handle: InstanceHandle) -> None:
        self._instance(handle).stopped = True

    def destroy(self, handle: InstanceHandle) -> None:
        self._instance(handle).destroyed = True

    def _instance(self, handle: InstanceHandle) -> _ScriptedInstance:
        try:
            return self.instances[handle.id]
        except KeyError:
            raise IllegalStateError(f"Unknown instance {handle.id}") from None


__all__ = ["DockerRuntime", "HOST_OVERRIDE_ENV", "InstanceRuntime", "ScriptedRuntime"]
