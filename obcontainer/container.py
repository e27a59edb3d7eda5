"""Lifecycle orchestration for an ephemeral OceanBase instance."""

from __future__ import annotations

import logging
from types import TracebackType

from .config import Settings
from .configurator import InstanceConfigurator
from .descriptor import ConnectionDescriptor, ConnectionDescriptorBuilder
from .dialects import DialectSelector
from .errors import IllegalStateError, InvalidConfigurationError
from .models import (
    DEFAULT_DATABASE_NAME,
    DEFAULT_IMAGE,
    EXPOSED_PORTS,
    RPC_PORT,
    SQL_PORT,
    DeploymentMode,
    Dialect,
    InstanceHandle,
    NetworkMode,
    ReadinessState,
)
from .ports import PortResolver
from .readiness import OutputConsumer, ReadinessDetector
from .runtime import DockerRuntime, InstanceRuntime

LOG = logging.getLogger(__name__)


class OceanBaseContainer:
    """Starts an OceanBase instance and describes how to connect to it.

    Exposed ports: SQL 2881, RPC 2882. Use as a context manager so the
    instance is destroyed on every exit path::

        with OceanBaseContainer().with_tenant("acme") as ob:
            url = ob.get_connection_url()
    """

    def __init__(
        self,
        image: str | None = None,
        *,
        runtime: InstanceRuntime | None = None,
        settings: Settings | None = None,
        network_mode: NetworkMode | str | None = None,
        startup_timeout: float | None = None,
        dialect: Dialect | str | None = None,
        check_image: bool = True,
    ) -> None:
        settings = settings or Settings()
        name = settings.image if image is None else image
        self._image = _check_image(name) if check_image else name
        self._runtime = runtime or DockerRuntime()
        self._configurator = InstanceConfigurator.from_settings(settings)
        self._url_params: dict[str, str] = dict(settings.url_params)
        self._selector = DialectSelector(settings.dialect if dialect is None else dialect)
        self._network_mode = _parse_network_mode(settings.network_mode if network_mode is None else network_mode)
        self._startup_timeout = _check_timeout(settings.startup_timeout if startup_timeout is None else startup_timeout)
        self._consumers: list[OutputConsumer] = []
        self._detector: ReadinessDetector | None = None
        self._handle: InstanceHandle | None = None
        self._resolver: PortResolver | None = None

    def __enter__(self) -> OceanBaseContainer:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    @property
    def image(self) -> str:
        return self._image

    @property
    def runtime(self) -> InstanceRuntime:
        return self._runtime

    @property
    def configurator(self) -> InstanceConfigurator:
        return self._configurator

    @property
    def mode(self) -> DeploymentMode:
        return self._configurator.mode

    @property
    def tenant_name(self) -> str:
        return self._configurator.tenant_name

    @property
    def username(self) -> str:
        """Connection user, always ``root@<tenant>``."""

        return self._configurator.username

    @property
    def password(self) -> str:
        return self._configurator.root_password

    @property
    def database_name(self) -> str:
        return DEFAULT_DATABASE_NAME

    @property
    def dialect(self) -> Dialect:
        return self._selector.dialect

    @property
    def driver(self) -> str:
        """DB-API module matching the selected dialect."""

        return self._selector.driver

    @property
    def url_params(self) -> dict[str, str]:
        return dict(self._url_params)

    @property
    def startup_timeout(self) -> float:
        return self._startup_timeout

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> InstanceHandle:
        return self._require_handle()

    @property
    def readiness_state(self) -> ReadinessState:
        if self._detector is None:
            return ReadinessState.NOT_STARTED
        return self._detector.state

    @property
    def host(self) -> str:
        return self._runtime.host(self._require_handle())

    @property
    def sql_port(self) -> int:
        return self.get_actual_port(SQL_PORT)

    @property
    def rpc_port(self) -> int:
        return self.get_actual_port(RPC_PORT)

    def environment(self) -> dict[str, str]:
        """Environment the instance boots (or booted) with."""

        return self._configurator.render_environment()

    def with_mode(self, mode: DeploymentMode | str) -> OceanBaseContainer:
        """Set the deployment mode: normal, mini or slim."""

        self._ensure_not_started()
        self._configurator.set_mode(mode)
        return self

    def with_tenant(self, tenant_name: str) -> OceanBaseContainer:
        """Set the non-system tenant to be created for testing."""

        self._ensure_not_started()
        self._configurator.set_tenant_name(tenant_name)
        return self

    def with_root_password(self, password: str) -> OceanBaseContainer:
        self._ensure_not_started()
        self._configurator.set_root_password(password)
        return self

    def with_url_param(self, key: str, value: str) -> OceanBaseContainer:
        """Append a query parameter to the connection URL; re-setting a key replaces it."""

        self._ensure_not_started()
        if not key:
            raise InvalidConfigurationError("URL parameter name cannot be empty")
        self._url_params[key] = value
        return self

    def with_dialect(self, dialect: Dialect | str) -> OceanBaseContainer:
        self._ensure_not_started()
        self._selector = DialectSelector(dialect)
        return self

    def with_network_mode(self, network_mode: NetworkMode | str) -> OceanBaseContainer:
        self._ensure_not_started()
        self._network_mode = _parse_network_mode(network_mode)
        return self

    def with_startup_timeout(self, seconds: float) -> OceanBaseContainer:
        self._ensure_not_started()
        self._startup_timeout = _check_timeout(seconds)
        return self

    def with_log_consumer(self, consumer: OutputConsumer) -> OceanBaseContainer:
        """Receive instance output lines while waiting for readiness."""

        self._consumers.append(consumer)
        return self

    def start(self) -> OceanBaseContainer:
        """Create, launch and wait for the instance; destroys it on failure."""

        if self._handle is not None:
            raise IllegalStateError("Instance already started")
        environment = self._configurator.render_environment()
        self._configurator.freeze()
        LOG.info(
            "Starting OceanBase instance",
            extra={"image": self._image, "mode": self.mode.value, "tenant": self.tenant_name},
        )
        handle = self._runtime.create(
            self._image,
            EXPOSED_PORTS,
            environment,
            network_mode=self._network_mode,
        )
        detector = ReadinessDetector(timeout=self._startup_timeout, consumers=self._consumers)
        self._detector = detector
        try:
            self._runtime.start(handle)
            detector.wait_until_ready(self._runtime.stream_output(handle))
        except BaseException:
            LOG.warning("Instance failed to start; destroying it", extra={"instance": handle.id})
            self._release(handle, suppress=True)
            raise
        self._handle = handle
        self._resolver = PortResolver(self._runtime, handle, EXPOSED_PORTS)
        LOG.info("OceanBase instance ready", extra={"instance": handle.id})
        return self

    def stop(self) -> None:
        """Stop and destroy the instance; a no-op when not running."""

        handle = self._handle
        if handle is None:
            return
        self._handle = None
        self._resolver = None
        self._release(handle, suppress=False)

    def get_actual_port(self, port: int) -> int:
        """Port to dial for an exposed logical port."""

        return self._require_resolver().resolve(port)

    def get_connection_url(self, database_name: str | None = None) -> str:
        return self.descriptor(database_name).url

    def descriptor(self, database_name: str | None = None) -> ConnectionDescriptor:
        """Build a connection descriptor from the current state."""

        return self._builder().build(database_name)

    def _builder(self) -> ConnectionDescriptorBuilder:
        return ConnectionDescriptorBuilder(
            self._configurator,
            self._require_resolver(),
            self._selector,
            host=self.host,
            url_params=self._url_params,
        )

    def _release(self, handle: InstanceHandle, *, suppress: bool) -> None:
        try:
            self._runtime.stop(handle)
        except Exception:
            LOG.warning("Failed to stop instance", exc_info=True, extra={"instance": handle.id})
        try:
            self._runtime.destroy(handle)
        except Exception:
            if not suppress:
                raise
            LOG.warning("Failed to destroy instance", exc_info=True, extra={"instance": handle.id})

    def _require_handle(self) -> InstanceHandle:
        if self._handle is None:
            raise IllegalStateError("Instance is not running; call start() first")
        return self._handle

    def _require_resolver(self) -> PortResolver:
        self._require_handle()
        assert self._resolver is not None
        return self._resolver

    def _ensure_not_started(self) -> None:
        if self._configurator.frozen:
            raise IllegalStateError("Configuration cannot change after the instance has started")


def _check_image(image: str) -> str:
    """Require an ``oceanbase/oceanbase-ce`` image, optionally behind a registry."""

    name = image.strip()
    if not name:
        raise InvalidConfigurationError("Image name cannot be empty")
    repository = name.split("@", 1)[0]
    last_segment = repository.rsplit("/", 1)[-1]
    if ":" in last_segment:
        repository = repository[: repository.rfind(":")]
    if repository != DEFAULT_IMAGE and not repository.endswith(f"/{DEFAULT_IMAGE}"):
        raise InvalidConfigurationError(f"Image '{image}' is not compatible with {DEFAULT_IMAGE}")
    return name


def _check_timeout(seconds: float) -> float:
    if seconds <= 0:
        raise InvalidConfigurationError("Startup timeout must be positive")
    return float(seconds)


def _parse_network_mode(value: NetworkMode | str | None) -> NetworkMode | None:
    if value is None:
        return None
    text = value.value if isinstance(value, NetworkMode) else value.strip().lower()
    if text not in {NetworkMode.BRIDGE.value, NetworkMode.HOST.value}:
        raise InvalidConfigurationError(
            f"Unsupported network mode '{text}', expected bridge or host; ports must stay reachable"
        )
    return NetworkMode(text)


__all__ = ["OceanBaseContainer"]
