"""Shared pytest fixtures for rescope tests."""

from collections.abc import Iterator

import pytest

from rescope import RescopeSettings, configure

pytest_plugins = ["pytester", "rescope.integrations.pytest_plugin"]


@pytest.fixture(autouse=True)
def _default_settings() -> Iterator[None]:
    """Run every test with default settings and restore them afterwards."""
    configure(RescopeSettings(release_on_close=True, close_order="permissive"))
    yield
    configure(RescopeSettings(release_on_close=True, close_order="permissive"))


@pytest.fixture()
def release_log() -> list[str]:
    """Ordered record of released resource names."""
    return []
