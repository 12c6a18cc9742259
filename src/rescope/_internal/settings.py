from __future__ import annotations

from typing import Any, Literal, TypeAlias

from pydantic_settings import BaseSettings, SettingsConfigDict

CloseOrder: TypeAlias = Literal["permissive", "strict"]


class RescopeSettings(BaseSettings):
    """Hold process-wide defaults for scopes and the scope registry.

    Values are read from ``RESCOPE_*`` environment variables the first time
    ``get_settings`` is called.

    Examples:
        .. code-block:: shell

            RESCOPE_RELEASE_ON_CLOSE=false RESCOPE_CLOSE_ORDER=strict pytest

    """

    model_config = SettingsConfigDict(env_prefix="RESCOPE_", frozen=True)

    release_on_close: bool = True
    """Default ``release_on_close`` for scopes that do not pass one."""

    close_order: CloseOrder = "permissive"
    """Policy for closing a scope that is not the innermost open one.

    ``"permissive"`` unregisters it and leaves inner scopes open.
    ``"strict"`` raises ``RescopeScopeOrderError``.
    """


_settings: RescopeSettings | None = None


def get_settings() -> RescopeSettings:
    """Return the active settings, loading them from the environment once."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = RescopeSettings()
    return _settings


def configure(settings: RescopeSettings | None = None, **overrides: Any) -> RescopeSettings:
    """Replace the active settings.

    Pass a ready ``RescopeSettings`` instance, or keyword overrides applied on
    top of the environment. Calling ``configure()`` with no arguments reloads
    from the environment.
    """
    global _settings  # noqa: PLW0603
    if settings is not None and overrides:
        msg = "Pass either a settings instance or keyword overrides, not both."
        raise TypeError(msg)
    _settings = settings if settings is not None else RescopeSettings(**overrides)
    return _settings


__all__ = [
    "CloseOrder",
    "RescopeSettings",
    "configure",
    "get_settings",
]
