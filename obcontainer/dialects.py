"""Connection URL dialect selection."""

from __future__ import annotations

import importlib.util
import logging
from dataclasses import dataclass
from typing import Callable, Mapping

from .errors import InvalidConfigurationError
from .models import Dialect

LOG = logging.getLogger(__name__)

AUTO_DIALECT = "auto"
NATIVE_CLIENT_MODULE = "pyobvector"


@dataclass(frozen=True, slots=True)
class DialectInfo:
    """URL prefix and driver identifier for one dialect."""

    dialect: Dialect
    url_prefix: str
    driver: str


DIALECTS: Mapping[Dialect, DialectInfo] = {
    Dialect.GENERIC: DialectInfo(Dialect.GENERIC, "mysql+pymysql://", "pymysql"),
    Dialect.NATIVE: DialectInfo(Dialect.NATIVE, "mysql+oceanbase://", NATIVE_CLIENT_MODULE),
}


def native_client_available() -> bool:
    """Whether the native OceanBase client library is importable."""

    return importlib.util.find_spec(NATIVE_CLIENT_MODULE) is not None


class DialectSelector:
    """Chooses between the generic MySQL-compatible and the native dialect.

    Callers that pinned the generic dialect keep it; ``"auto"`` prefers the
    native dialect when its client library is installed.
    """

    def __init__(
        self,
        dialect: Dialect | str | None = None,
        *,
        detector: Callable[[], bool] = native_client_available,
    ) -> None:
        self._requested = self._parse(dialect)
        self._detector = detector

    @property
    def requested(self) -> Dialect | str:
        return self._requested

    @property
    def dialect(self) -> Dialect:
        if isinstance(self._requested, Dialect):
            return self._requested
        if self._detector():
            return Dialect.NATIVE
        LOG.debug("Native client not installed; using generic dialect", extra={"client_module": NATIVE_CLIENT_MODULE})
        return Dialect.GENERIC

    @property
    def info(self) -> DialectInfo:
        return DIALECTS[self.dialect]

    @property
    def url_prefix(self) -> str:
        return self.info.url_prefix

    @property
    def driver(self) -> str:
        return self.info.driver

    @staticmethod
    def _parse(value: Dialect | str | None) -> Dialect | str:
        if value is None:
            return Dialect.GENERIC
        if isinstance(value, Dialect):
            return value
        text = value.strip().lower()
        if text == AUTO_DIALECT:
            return AUTO_DIALECT
        try:
            return Dialect(text)
        except ValueError:
            raise InvalidConfigurationError(
                f"Unknown dialect '{value}', expected generic, native or {AUTO_DIALECT}"
            ) from None


__all__ = [
    "AUTO_DIALECT",
    "DIALECTS",
    "DialectInfo",
    "DialectSelector",
    "NATIVE_CLIENT_MODULE",
    "native_client_available",
]
