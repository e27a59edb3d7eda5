"""Settings loading helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidConfigurationError
from .models import DEFAULT_IMAGE, DEFAULT_ROOT_PASSWORD, DEFAULT_STARTUP_TIMEOUT, DEFAULT_TENANT_NAME

SETTINGS_FILE = Path("obcontainer.toml")
SECTION = "obcontainer"
PYPROJECT_FILE = Path("pyproject.toml")


class Settings(BaseModel):
    """Shape of the ``obcontainer.toml`` settings file."""

    image: str = DEFAULT_IMAGE
    mode: str | None = None
    tenant_name: str = DEFAULT_TENANT_NAME
    root_password: str = DEFAULT_ROOT_PASSWORD
    dialect: str = "generic"
    url_params: dict[str, str] = Field(default_factory=dict)
    startup_timeout: float = DEFAULT_STARTUP_TIMEOUT
    network_mode: str | None = None
    emit_defaults_explicitly: bool = False
    supports_root_password: bool = True

    def with_url_param(self, key: str, value: str) -> Settings:
        """Return a copy with one extra URL parameter set."""

        params = dict(self.url_params)
        params[key] = value
        return self.model_copy(update={"url_params": params})

    def with_overrides(self, **updates: object) -> Settings:
        """Return a copy with the non-``None`` updates applied."""

        applied = {key: value for key, value in updates.items() if value is not None}
        return self.model_copy(update=applied)


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from disk; fall back to defaults if the file is missing.

    Without an explicit ``path`` the ``obcontainer.toml`` file is read, then the
    ``[tool.obcontainer]`` table of ``pyproject.toml`` when that file is absent.
    """

    if path is not None:
        return _load_from(path, _read_settings_file)
    if SETTINGS_FILE.exists():
        return _load_from(SETTINGS_FILE, _read_settings_file)
    return _load_from(PYPROJECT_FILE, _read_pyproject_table)


def _load_from(target: Path, reader: Callable[[Path], dict[str, object]]) -> Settings:
    try:
        data = reader(target)
    except FileNotFoundError:
        return Settings()
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise InvalidConfigurationError(f"Cannot read settings from {target}: {exc}") from exc
    try:
        return Settings(**data)
    except ValidationError as exc:
        raise InvalidConfigurationError(f"Invalid settings in {target}: {exc}") from exc


def _read_pyproject_table(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    tool = raw.get("tool")
    if isinstance(tool, dict) and isinstance(tool.get(SECTION), dict):
        return dict(tool[SECTION])
    return {}


def _read_settings_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    tool = raw.get("tool")
    if isinstance(tool, dict) and isinstance(tool.get(SECTION), dict):
        return dict(tool[SECTION])
    section = raw.get(SECTION)
    if isinstance(section, dict):
        return dict(section)
    return dict(raw)


__all__ = ["PYPROJECT_FILE", "SETTINGS_FILE", "Settings", "load_settings"]
