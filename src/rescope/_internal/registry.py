from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from collections.abc import Iterator
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, TypeAlias

from rescope._internal.settings import get_settings
from rescope.exceptions import RescopeInvalidReuseError, RescopeScopeOrderError

if TYPE_CHECKING:
    from rescope._internal.scope import Scope

logger = logging.getLogger(__name__)

ContextOwner: TypeAlias = "tuple[int, weakref.ReferenceType[asyncio.Task[Any]] | None]"


def current_owner() -> ContextOwner:
    """Return an identifier for the current execution context.

    The first item is the thread id. The second is a weak reference to the
    running asyncio task, or ``None`` outside of a task. Weak references to a
    live task compare equal, and one to a finished task never equals a
    reference to a newer task.
    """
    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None
    return threading.get_ident(), (weakref.ref(task) if task is not None else None)


class ScopeRegistry:
    """Track the scopes opened and not yet closed in each execution context.

    Every thread gets its own stack, created lazily on first use. Stacks are
    never shared between threads, so no locking is needed. An asyncio task
    starts from a private copy of the stack it inherited from the code that
    created it: it can see (and attach to) scopes opened by its parent, while
    scopes it opens itself stay invisible to the parent.

    The stack is stored newest-last internally and exposed innermost-first.
    """

    __slots__ = ("_stack_var",)

    def __init__(self) -> None:
        self._stack_var: ContextVar[tuple[ContextOwner, list[Scope]] | None] = ContextVar(
            f"rescope_scope_stack_{id(self)}",
            default=None,
        )

    def _stack(self) -> list[Scope]:
        owner = current_owner()
        stored = self._stack_var.get()

        if stored is None:
            stack: list[Scope] = []
            self._stack_var.set((owner, stack))
            return stack

        stored_owner, stack = stored
        if stored_owner == owner:
            return stack

        # Same thread but another task: copy. Another thread: start empty.
        copied = list(stack) if stored_owner[0] == owner[0] else []
        self._stack_var.set((owner, copied))
        return copied

    def open(self, scope: Scope) -> None:
        """Push ``scope`` as the innermost open scope of the calling context."""
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Registering %r", scope)
        self._stack().append(scope)

    def close(self, scope: Scope) -> None:
        """Remove ``scope`` from the calling context's stack by identity.

        The scope does not have to be the innermost one. Under the
        ``"permissive"`` close-order policy the inner scopes stay registered
        and a warning is logged; under ``"strict"`` the call fails.

        Raises:
            RescopeScopeOrderError: If the policy is strict and ``scope`` is not
                the innermost open scope.
            RescopeInvalidReuseError: If ``scope`` is not open in this context.

        """
        stack = self._stack()
        index = self._closable_index(stack, scope)
        inner_count = len(stack) - 1 - index
        if inner_count:
            logger.warning(
                "Closing %r out of order, %d inner scope(s) remain open",
                scope,
                inner_count,
            )
        del stack[index]
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Unregistered %r", scope)

    def check_close(self, scope: Scope) -> None:
        """Raise the error ``close(scope)`` would raise, without closing it."""
        self._closable_index(self._stack(), scope)

    def _closable_index(self, stack: list[Scope], scope: Scope) -> int:
        index = _index_by_identity(stack, scope)
        if index is None:
            msg = f"{scope!r} is not open in the current thread."
            raise RescopeInvalidReuseError(msg)

        inner_count = len(stack) - 1 - index
        if inner_count and get_settings().close_order == "strict":
            msg = (
                f"Cannot close {scope!r} while {inner_count} inner scope(s) are still open. "
                "Close inner scopes first."
            )
            raise RescopeScopeOrderError(msg)
        return index

    def innermost(self) -> Scope | None:
        """Return the most recently opened scope that is still open, if any."""
        stack = self._stack()
        if not stack:
            return None
        return stack[-1]

    def iterate(self) -> Iterator[Scope]:
        """Iterate over the open scopes of the calling context, innermost first.

        The iterator walks a snapshot taken when it is created, so scopes opened
        or closed during the walk do not affect it. Call again to restart.
        """
        return reversed(tuple(self._stack()))

    def depth(self) -> int:
        """Return the number of open scopes in the calling context."""
        return len(self._stack())

    def forget(self, resource: Any) -> None:
        """Detach ``resource`` from every open scope of the calling context."""
        for scope in self.iterate():
            if resource in scope:
                scope.detach(resource)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(depth={self.depth()})"


def _index_by_identity(stack: list[Scope], scope: Scope) -> int | None:
    for index in range(len(stack) - 1, -1, -1):
        if stack[index] is scope:
            return index
    return None


scope_registry = ScopeRegistry()
"""Provide the default registry used by scopes and the attachment search."""


__all__ = [
    "ContextOwner",
    "ScopeRegistry",
    "current_owner",
    "scope_registry",
]
