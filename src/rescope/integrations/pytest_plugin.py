"""Pytest fixtures for code that allocates scoped resources.

Enable the plugin from a ``conftest.py``:

.. code-block:: python

    pytest_plugins = ["rescope.integrations.pytest_plugin"]

"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from rescope._internal.registry import scope_registry
from rescope._internal.scope import Scope


@pytest.fixture()
def rescope_scope() -> Iterator[Scope]:
    """Open a scope around the test and close it afterwards.

    Resources created by the test (or by fixtures requested after this one)
    attach to this scope unless an inner scope takes them, and are released
    at teardown.

    Yields:
        The open ``Scope``.

    """
    with Scope() as scope:
        yield scope


@pytest.fixture(autouse=True)
def _rescope_leak_check(request: pytest.FixtureRequest) -> Iterator[None]:
    """Fail a test that leaves scopes open on the test thread.

    Leaked scopes are closed innermost first before failing, so one leaking
    test does not affect the next one. Errors raised while closing them are
    added to the failure report.
    """
    depth_before = scope_registry.depth()
    yield
    leaked = scope_registry.depth() - depth_before
    if leaked <= 0:
        return

    close_failures: list[str] = []
    for scope in list(scope_registry.iterate())[:leaked]:
        try:
            scope.close()
        except Exception as error:  # noqa: BLE001
            close_failures.append(f"{scope!r}: {type(error).__name__}: {error}")

    msg = (
        f"{request.node.nodeid} left {leaked} scope(s) open. "
        "Close scopes with 'with Scope(): ...' or scope.close()."
    )
    if close_failures:
        msg += " Closing them failed with: " + "; ".join(close_failures)
    pytest.fail(msg, pytrace=False)


__all__ = ["rescope_scope"]
