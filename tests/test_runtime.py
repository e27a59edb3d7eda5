"""Tests for the Docker-backed runtime using fake SDK objects."""

from __future__ import annotations

from typing import Any

import pytest
from docker.errors import APIError, NotFound

from obcontainer.errors import PortNotExposedError, StartFailureError
from obcontainer.models import InstanceHandle, NetworkMode
from obcontainer.runtime import DockerRuntime, InstanceRuntime, ScriptedRuntime


class _FakeContainer:
    def __init__(self, attrs: dict[str, Any] | None = None) -> None:
        self.id = "c0ffee" * 8
        self.name = "happy_oceanbase"
        self.attrs = attrs or {}
        self.started = False
        self.stopped_with: int | None = None
        self.removed_with: dict[str, Any] | None = None
        self.reloads = 0
        self.start_error: Exception | None = None

    def start(self) -> None:
        if self.start_error:
            raise self.start_error
        self.started = True

    def reload(self) -> None:
        self.reloads += 1

    def logs(self, **kwargs: Any):
        self.logs_kwargs = kwargs
        return iter([b"boot success!\n"])

    def stop(self, timeout: int) -> None:
        self.stopped_with = timeout

    def remove(self, **kwargs: Any) -> None:
        self.removed_with = kwargs


class _FakeContainers:
    def __init__(self, container: _FakeContainer) -> None:
        self.container = container
        self.create_kwargs: dict[str, Any] | None = None
        self.create_error: Exception | None = None
        self.missing = False

    def create(self, **kwargs: Any) -> _FakeContainer:
        if self.create_error:
            raise self.create_error
        self.create_kwargs = kwargs
        return self.container

    def get(self, container_id: str) -> _FakeContainer:
        if self.missing:
            raise NotFound("gone")
        return self.container


class _FakeApi:
    def __init__(self, base_url: str) -> None:
        self.base_url = base_url


class _FakeClient:
    def __init__(self, container: _FakeContainer, base_url: str = "http+docker://localhost") -> None:
        self.containers = _FakeContainers(container)
        self.api = _FakeApi(base_url)


def _runtime(container: _FakeContainer | None = None, **kwargs: Any) -> tuple[DockerRuntime, _FakeClient]:
    client = _FakeClient(container or _FakeContainer(), **kwargs)
    return DockerRuntime(client, stop_timeout=3), client  # type: ignore[arg-type]


def test_runtimes_satisfy_protocol() -> None:
    runtime, _ = _runtime()

    assert isinstance(runtime, InstanceRuntime)
    assert isinstance(ScriptedRuntime(), InstanceRuntime)


def test_create_publishes_exposed_ports() -> None:
    runtime, client = _runtime()

    handle = runtime.create("oceanbase/oceanbase-ce", (2881, 2882), {"MODE": "slim"})

    kwargs = client.containers.create_kwargs
    assert kwargs is not None
    assert kwargs["ports"] == {"2881/tcp": None, "2882/tcp": None}
    assert kwargs["environment"] == {"MODE": "slim"}
    assert kwargs["detach"] is True
    assert "network_mode" not in kwargs
    assert handle.id == client.containers.container.id
    assert handle.name == "happy_oceanbase"


def test_create_in_host_network_skips_port_publishing() -> None:
    runtime, client = _runtime()

    runtime.create("oceanbase/oceanbase-ce", (2881, 2882), {}, network_mode=NetworkMode.HOST)

    kwargs = client.containers.create_kwargs
    assert kwargs is not None
    assert kwargs["network_mode"] == "host"
    assert "ports" not in kwargs


def test_create_errors_become_start_failures() -> None:
    runtime, client = _runtime()
    client.containers.create_error = APIError("no such image")

    with pytest.raises(StartFailureError):
        runtime.create("oceanbase/oceanbase-ce", (2881,), {})


def test_start_errors_become_start_failures() -> None:
    container = _FakeContainer()
    container.start_error = APIError("port is already allocated")
    runtime, _ = _runtime(container)
    handle = InstanceHandle(id=container.id, image="oceanbase/oceanbase-ce")

    with pytest.raises(StartFailureError):
        runtime.start(handle)


def test_mapped_port_reads_network_settings() -> None:
    container = _FakeContainer(
        {"NetworkSettings": {"Ports": {"2881/tcp": [{"HostIp": "0.0.0.0", "HostPort": "49153"}], "2882/tcp": None}}}
    )
    runtime, _ = _runtime(container)
    handle = InstanceHandle(id=container.id, image="oceanbase/oceanbase-ce")

    assert runtime.mapped_port(handle, 2881) == 49153
    assert container.reloads == 1
    with pytest.raises(PortNotExposedError):
        runtime.mapped_port(handle, 2882)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("default", NetworkMode.BRIDGE), ("bridge", NetworkMode.BRIDGE), ("host", NetworkMode.HOST), ("my-net", NetworkMode.CUSTOM)],
)
def test_network_mode_reads_host_config(raw: str, expected: NetworkMode) -> None:
    container = _FakeContainer({"HostConfig": {"NetworkMode": raw}})
    runtime, _ = _runtime(container)

    assert runtime.network_mode(InstanceHandle(id=container.id, image="x")) is expected


def test_host_prefers_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TC_HOST", "docker.internal")
    runtime, _ = _runtime(base_url="tcp://10.0.0.5:2375")

    assert runtime.host(InstanceHandle(id="x", image="x")) == "docker.internal"


@pytest.mark.parametrize(
    ("base_url", "expected"),
    [("http+docker://localhost", "localhost"), ("tcp://10.0.0.5:2375", "10.0.0.5"), ("https://docker.example:2376", "docker.example")],
)
def test_host_follows_daemon_url(monkeypatch: pytest.MonkeyPatch, base_url: str, expected: str) -> None:
    monkeypatch.delenv("TC_HOST", raising=False)
    runtime, _ = _runtime(base_url=base_url)

    assert runtime.host(InstanceHandle(id="x", image="x")) == expected


def test_stream_output_follows_logs() -> None:
    container = _FakeContainer()
    runtime, _ = _runtime(container)

    chunks = list(runtime.stream_output(InstanceHandle(id=container.id, image="x")))

    assert chunks == [b"boot success!\n"]
    assert container.logs_kwargs["stream"] is True
    assert container.logs_kwargs["follow"] is True


def test_stop_and_destroy() -> None:
    container = _FakeContainer()
    runtime, _ = _runtime(container)
    handle = InstanceHandle(id=container.id, image="x")

    runtime.stop(handle)
    runtime.destroy(handle)

    assert container.stopped_with == 3
    assert container.removed_with == {"force": True, "v": True}


def test_destroy_tolerates_missing_container() -> None:
    runtime, client = _runtime()
    client.containers.missing = True
    handle = InstanceHandle(id="x", image="x")

    runtime.stop(handle)
    runtime.destroy(handle)
