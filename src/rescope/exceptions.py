from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class RescopeError(Exception):
    """Represent a base class for all rescope-specific failures.

    Catch this type when you want to handle any rescope error path without
    matching each concrete exception class individually.
    """


class RescopeInvalidAttachmentError(RescopeError, ValueError):
    """Signal that a scope refused a resource.

    Raised by ``Scope.attach`` when the scope was opened with a non-empty
    ``accept_filter`` and the resource's ``type_tag`` matches none of its
    entries, or when another open scope already holds the resource. The
    scope's resource list is left unchanged.

    Typical fixes include attaching the resource to a different scope, widening
    the filter, or detaching the resource from its current scope first.
    """

    def __init__(self, msg: str, *, resource: Any, accept_filter: Iterable[Any]) -> None:
        super().__init__(msg)
        self.resource = resource
        self.accept_filter = frozenset(accept_filter)


class RescopeInvalidReuseError(RescopeError, RuntimeError):
    """Signal use of a scope after its lifecycle ended.

    Raised when ``release`` runs a second time on a consumed resource list,
    when ``close`` runs a second time, and when resources are attached to a
    closed or consumed scope.

    Typical fix is opening a new ``Scope`` instead of reusing a finished one.
    """


class RescopeScopeOrderError(RescopeError):
    """Signal an out-of-order close under the strict close-order policy.

    Raised by ``ScopeRegistry.close`` when ``close_order="strict"`` and the
    scope being closed is not the innermost open scope on the thread.

    Typical fixes include closing inner scopes first (``with`` blocks do this
    automatically) or switching back to the permissive policy.
    """


class RescopeForeignThreadError(RescopeError):
    """Signal that a scope was closed by a thread that did not open it.

    Scopes are confined to the thread that opened them. Closing one from another
    thread would touch an unrelated registry stack, so it is rejected before
    any resource is released.
    """


class RescopeReleaseError(RescopeError):
    """Aggregate failures raised by resource release operations.

    ``Scope.release`` keeps releasing the remaining resources when one of them
    fails. When more than one release fails, the failures are collected in
    ``errors`` (in release order) and raised together. The first failure is
    also set as ``__cause__``.
    """

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors = tuple(errors)
        super().__init__(f"{len(self.errors)} resources failed to release")
