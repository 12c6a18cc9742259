from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Iterable
from typing import Any, TypeVar, overload

from rescope._internal.scope import Scope
from rescope.exceptions import RescopeError

F = TypeVar("F", bound=Callable[..., Any])


@overload
def scoped(func: F, /) -> F: ...


@overload
def scoped(
    func: None = None,
    /,
    *,
    release_on_close: bool | None = None,
    accept_filter: Iterable[Any] | None = (),
) -> Callable[[F], F]: ...


def scoped(
    func: F | None = None,
    /,
    *,
    release_on_close: bool | None = None,
    accept_filter: Iterable[Any] | None = (),
) -> F | Callable[[F], F]:
    """Run each call of the decorated function inside a fresh ``Scope``.

    Resources created during the call attach to that scope (unless an inner
    scope takes them) and are released when the call returns or raises.

    Only synchronous functions are supported: a scope must not stay open
    across suspension points.

    Examples:
        .. code-block:: python

            @scoped
            def checksum(path: str) -> int:
                data = MappedFile(path)
                return crc32(data.view())

            @scoped(accept_filter={Buffer})
            def fill(size: int) -> bytes:
                return Buffer(size).to_bytes()

    """
    accepted = tuple(accept_filter or ())

    def decorator(callable_obj: F) -> F:
        if inspect.iscoroutinefunction(callable_obj) or inspect.isasyncgenfunction(callable_obj):
            msg = f"Cannot wrap async callable {callable_obj.__qualname__!r} with @scoped."
            raise RescopeError(msg)

        @functools.wraps(callable_obj)
        def _scoped(*args: Any, **kwargs: Any) -> Any:
            with Scope(release_on_close=release_on_close, accept_filter=accepted):
                return callable_obj(*args, **kwargs)

        return _scoped  # type: ignore[return-value]

    if func is not None:
        return decorator(func)
    return decorator


__all__ = ["scoped"]
