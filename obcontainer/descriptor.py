"""Connection descriptor assembly."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlencode

from .configurator import InstanceConfigurator
from .dialects import DialectSelector
from .models import DEFAULT_DATABASE_NAME, RPC_PORT, SQL_PORT, Dialect, PortBinding
from .ports import PortResolver


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    """Everything a test process needs to connect to the instance."""

    dialect: Dialect
    url_prefix: str
    driver: str
    host: str
    port: int
    database: str
    username: str
    password: str
    params: tuple[tuple[str, str], ...] = ()
    sql_port: PortBinding | None = None
    rpc_port: PortBinding | None = None

    @property
    def query_string(self) -> str:
        if not self.params:
            return ""
        return "?" + urlencode(self.params)

    @property
    def url(self) -> str:
        return f"{self.url_prefix}{self.host}:{self.port}/{self.database}{self.query_string}"

    def connect_kwargs(self) -> dict[str, object]:
        """Keyword arguments for a DB-API ``connect()`` call."""

        return {
            "host": self.host,
            "port": self.port,
            "user": self.username,
            "password": self.password,
            "database": self.database,
        }


class ConnectionDescriptorBuilder:
    """Builds a fresh descriptor from current configuration on every call."""

    def __init__(
        self,
        configurator: InstanceConfigurator,
        resolver: PortResolver,
        selector: DialectSelector,
        *,
        host: str,
        url_params: Mapping[str, str] | None = None,
    ) -> None:
        self._configurator = configurator
        self._resolver = resolver
        self._selector = selector
        self._host = host
        self._url_params = url_params if url_params is not None else {}

    @property
    def username(self) -> str:
        return self._configurator.username

    @property
    def password(self) -> str:
        return self._configurator.root_password

    def build(self, database_name: str | None = None) -> ConnectionDescriptor:
        sql_binding = self._resolver.binding(SQL_PORT)
        rpc_binding = self._resolver.binding(RPC_PORT) if RPC_PORT in self._resolver.exposed_ports else None
        info = self._selector.info
        return ConnectionDescriptor(
            dialect=info.dialect,
            url_prefix=info.url_prefix,
            driver=info.driver,
            host=self._host,
            port=sql_binding.resolved_port,
            database=database_name or DEFAULT_DATABASE_NAME,
            username=self.username,
            password=self.password,
            params=tuple((str(key), str(value)) for key, value in self._url_params.items()),
            sql_port=sql_binding,
            rpc_port=rpc_binding,
        )

    def url(self, database_name: str | None = None) -> str:
        return self.build(database_name).url


__all__ = ["ConnectionDescriptor", "ConnectionDescriptorBuilder"]
