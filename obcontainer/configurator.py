"""Deployment configuration applied to the instance before it boots."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import IllegalStateError, InvalidConfigurationError
from .models import (
    DEFAULT_MODE,
    DEFAULT_ROOT_PASSWORD,
    DEFAULT_TENANT_NAME,
    MODE_ENV,
    ROOT_PASSWORD_ENV,
    ROOT_USER,
    SYSTEM_TENANT,
    TENANT_NAME_ENV,
    DeploymentMode,
)

if TYPE_CHECKING:
    from .config import Settings

LOG = logging.getLogger(__name__)


class InstanceConfigurator:
    """Validates mode, tenant and root password and renders the boot environment.

    Values are owned here until the instance starts; ``freeze()`` is called at
    that point and every later setter call fails with ``IllegalStateError``.

    ``emit_defaults_explicitly`` controls whether default values are written to
    the environment even when the image already bakes them in.
    ``supports_root_password`` controls whether the password variable is
    rendered at all.
    """

    def __init__(
        self,
        *,
        emit_defaults_explicitly: bool = False,
        supports_root_password: bool = True,
    ) -> None:
        self._mode: DeploymentMode | None = None
        self._tenant_name = DEFAULT_TENANT_NAME
        self._root_password = DEFAULT_ROOT_PASSWORD
        self._emit_defaults_explicitly = emit_defaults_explicitly
        self._supports_root_password = supports_root_password
        self._frozen = False

    @classmethod
    def from_settings(cls, settings: Settings) -> InstanceConfigurator:
        """Build a configurator from loaded settings, validating every value."""

        configurator = cls(
            emit_defaults_explicitly=settings.emit_defaults_explicitly,
            supports_root_password=settings.supports_root_password,
        )
        if settings.mode is not None:
            configurator.set_mode(settings.mode)
        configurator.set_tenant_name(settings.tenant_name)
        configurator.set_root_password(settings.root_password)
        return configurator

    @property
    def mode(self) -> DeploymentMode:
        """Explicit mode, or the image default when none was set."""

        return self._mode or DEFAULT_MODE

    @property
    def mode_is_explicit(self) -> bool:
        return self._mode is not None

    @property
    def tenant_name(self) -> str:
        return self._tenant_name

    @property
    def root_password(self) -> str:
        return self._root_password

    @property
    def username(self) -> str:
        return f"{ROOT_USER}@{self._tenant_name}"

    @property
    def emit_defaults_explicitly(self) -> bool:
        return self._emit_defaults_explicitly

    @property
    def frozen(self) -> bool:
        return self._frozen

    def set_mode(self, value: str | DeploymentMode) -> DeploymentMode:
        """Set the deployment mode from a case-insensitive name."""

        self._ensure_mutable()
        mode = value if isinstance(value, DeploymentMode) else DeploymentMode.parse(value)
        self._mode = mode
        return mode

    def set_tenant_name(self, value: str | None) -> None:
        """Set the non-system tenant created for testing."""

        self._ensure_mutable()
        if not value:
            raise InvalidConfigurationError("Tenant name cannot be null or empty")
        if value == SYSTEM_TENANT:
            raise InvalidConfigurationError(f"Tenant name cannot be {SYSTEM_TENANT}")
        self._tenant_name = value

    def set_root_password(self, value: str | None) -> None:
        """Set the root password; an empty string means no password."""

        self._ensure_mutable()
        if value is None:
            raise InvalidConfigurationError("Root password cannot be null")
        self._root_password = value

    def render_environment(self) -> dict[str, str]:
        """Return the environment variables the image reads at boot."""

        env: dict[str, str] = {}
        if self._mode is not None:
            env[MODE_ENV] = self._mode.value
        elif self._emit_defaults_explicitly:
            env[MODE_ENV] = DEFAULT_MODE.value
        if self._tenant_name != DEFAULT_TENANT_NAME or self._emit_defaults_explicitly:
            env[TENANT_NAME_ENV] = self._tenant_name
        if self._supports_root_password:
            env[ROOT_PASSWORD_ENV] = self._root_password
        return env

    def freeze(self) -> None:
        """Reject further changes; called once the instance has started."""

        if not self._frozen:
            LOG.debug(
                "Configuration frozen",
                extra={"mode": self.mode.value, "tenant": self._tenant_name},
            )
        self._frozen = True

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise IllegalStateError("Configuration cannot change after the instance has started")


__all__ = ["InstanceConfigurator"]
