from __future__ import annotations

import logging
from typing import Any

from rescope._internal.registry import ScopeRegistry, scope_registry
from rescope._internal.scope import Scope

logger = logging.getLogger(__name__)


def attach_to_scope(resource: Any, *, registry: ScopeRegistry | None = None) -> Scope | None:
    """Attach a newly created resource to the nearest scope that accepts it.

    Open scopes of the calling thread are tried innermost first. The first one
    whose filter accepts the resource takes ownership and the search stops,
    so inner, more specific scopes win over outer, more general ones. Scopes
    already drained with ``Scope.release`` or closed are skipped.

    Args:
        resource: Resource exposing ``deallocate()`` and optionally ``type_tag``.
        registry: Registry to search. Defaults to the shared ``scope_registry``.

    Returns:
        The scope that now owns ``resource``, or ``None`` when no open scope
        accepts it and the resource stays unmanaged.

    Examples:
        .. code-block:: python

            with Scope() as everything, Scope(accept_filter={Buffer}) as buffers:
                assert attach_to_scope(Buffer(8)) is buffers
                assert attach_to_scope(Texture()) is everything

    """
    search_registry = registry if registry is not None else scope_registry
    for scope in search_registry.iterate():
        if scope.closed or scope.consumed or not scope.accepts(resource):
            continue
        scope.attach(resource)
        return scope

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("No open scope accepts %r, leaving it unmanaged", resource)
    return None


__all__ = ["attach_to_scope"]
