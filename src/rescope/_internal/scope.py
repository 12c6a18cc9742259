from __future__ import annotations

import logging
from collections.abc import Iterable
from types import TracebackType
from typing import TYPE_CHECKING, Any

from rescope._internal.registry import ScopeRegistry, current_owner, scope_registry
from rescope._internal.settings import get_settings
from rescope.exceptions import (
    RescopeForeignThreadError,
    RescopeInvalidAttachmentError,
    RescopeInvalidReuseError,
    RescopeReleaseError,
)

if TYPE_CHECKING:
    from typing_extensions import Self

logger = logging.getLogger(__name__)


class Scope:
    """Own a stack of resources and release them together.

    Creating a scope registers it as the innermost open scope of the calling
    thread. Resources created while it is open attach themselves to it (see
    ``attach_to_scope``), or can be attached explicitly. Closing the scope
    releases every resource still attached, most recently attached first, and
    unregisters it.

    A non-empty ``accept_filter`` restricts the scope to resources whose
    ``type_tag`` matches one of its entries. A class tag also matches entries
    that are base classes of it. Nesting a filtered scope inside an
    unfiltered one lets, for example, buffers go to the inner scope while
    everything else goes to the outer one.

    Scopes are single use and confined to the thread that opened them.

    Examples:
        .. code-block:: python

            with Scope() as scope:
                a = Buffer(1024)
                b = Buffer(2048)
            # b, then a, are deallocated here

            with Scope(accept_filter={Buffer}) as buffers:
                keep = Buffer(16)
                buffers.detach(keep)

    """

    __slots__ = (
        "__weakref__",
        "_accept_filter",
        "_closed",
        "_owner",
        "_registry",
        "_release_on_close",
        "_resources",
    )

    def __init__(
        self,
        release_on_close: bool | None = None,
        accept_filter: Iterable[Any] | None = (),
        *,
        registry: ScopeRegistry | None = None,
    ) -> None:
        """Open a scope and register it with the calling thread's registry.

        Args:
            release_on_close: Whether ``close`` releases attached resources.
                ``None`` takes ``RescopeSettings.release_on_close``.
            accept_filter: Type tags this scope accepts. Empty accepts any
                resource.
            registry: Registry to register with. Defaults to the shared
                ``scope_registry``.

        """
        if release_on_close is None:
            release_on_close = get_settings().release_on_close
        self._release_on_close = release_on_close
        self._accept_filter: frozenset[Any] = frozenset(accept_filter or ())
        self._resources: list[Any] | None = []
        self._closed = False
        self._owner = current_owner()
        self._registry = registry if registry is not None else scope_registry
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Opening %r", self)
        self._registry.open(self)

    @property
    def release_on_close(self) -> bool:
        return self._release_on_close

    def set_release_on_close(self, release_on_close: bool) -> Self:
        """Change whether ``close`` releases attached resources."""
        if self._closed:
            msg = f"Cannot change release_on_close of closed {self!r}."
            raise RescopeInvalidReuseError(msg)
        self._release_on_close = release_on_close
        return self

    @property
    def accept_filter(self) -> frozenset[Any]:
        return self._accept_filter

    @property
    def resources(self) -> tuple[Any, ...]:
        """Return the attached resources in attachment order."""
        if self._resources is None:
            return ()
        return tuple(self._resources)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def consumed(self) -> bool:
        """Return whether ``release`` already drained this scope."""
        return self._resources is None

    @property
    def owner_thread_id(self) -> int:
        return self._owner[0]

    def accepts(self, resource: Any) -> bool:
        """Return whether the filter lets ``resource`` attach to this scope."""
        if not self._accept_filter:
            return True
        tag = type_tag_of(resource)
        return any(tag_matches(tag, entry) for entry in self._accept_filter)

    def attach(self, resource: Any) -> Self:
        """Push ``resource`` onto this scope's resource stack.

        Attaching a resource that is already attached here is a no-op. A
        resource belongs to at most one open scope of the calling thread.

        Raises:
            RescopeInvalidAttachmentError: If the filter rejects the resource or
                another open scope already holds it.
            RescopeInvalidReuseError: If the scope is closed or consumed.

        """
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Attaching %r to %r", resource, self)
        self._check_thread("attach to")
        resources = self._require_resources("attach to")
        if not self.accepts(resource):
            tags = ", ".join(sorted(_tag_repr(tag) for tag in self._accept_filter))
            msg = (
                f"{resource!r} with type tag {_tag_repr(type_tag_of(resource))} "
                f"is not accepted by filter [{tags}] of {self!r}."
            )
            raise RescopeInvalidAttachmentError(
                msg,
                resource=resource,
                accept_filter=self._accept_filter,
            )
        if _index_by_identity(resources, resource) is not None:
            return self
        holder = self._holder_of(resource)
        if holder is not None:
            msg = f"{resource!r} is already attached to {holder!r}. Detach it there first."
            raise RescopeInvalidAttachmentError(
                msg,
                resource=resource,
                accept_filter=self._accept_filter,
            )
        resources.append(resource)
        return self

    def detach(self, resource: Any) -> Self:
        """Remove ``resource`` so that this scope will not release it.

        Missing resources are ignored.
        """
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Detaching %r from %r", resource, self)
        self._check_thread("detach from")
        if self._resources is not None:
            index = _index_by_identity(self._resources, resource)
            if index is not None:
                del self._resources[index]
        return self

    def release(self) -> None:
        """Deallocate every attached resource, most recently attached first.

        Every resource is released even if some releases fail. A single failure
        is re-raised unchanged; several are raised as ``RescopeReleaseError``.
        The resource list is consumed afterwards either way.

        Raises:
            RescopeInvalidReuseError: If the resource list was already consumed.
            RescopeReleaseError: If more than one resource failed to release.

        """
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Releasing %r", self)
        self._check_thread("release")
        resources = self._require_resources("release")

        errors: list[BaseException] = []
        while resources:
            resource = resources.pop()
            try:
                resource.deallocate()
            except BaseException as error:  # noqa: BLE001
                errors.append(error)
        self._resources = None
        _raise_release_errors(errors)

    def close(self) -> None:
        """Release attached resources when configured to, then unregister.

        The scope is unregistered even when releasing fails.

        Raises:
            RescopeInvalidReuseError: If the scope is already closed.
            RescopeForeignThreadError: If called from another thread or task.
            RescopeScopeOrderError: If the close-order policy is strict and
                inner scopes are still open.

        """
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Closing %r", self)
        if self._closed:
            msg = f"{self!r} is already closed."
            raise RescopeInvalidReuseError(msg)
        if current_owner() != self._owner:
            msg = f"{self!r} must be closed by the thread and task that opened it."
            raise RescopeForeignThreadError(msg)
        self._registry.check_close(self)

        try:
            if self._release_on_close and self._resources is not None:
                self.release()
        finally:
            self._closed = True
            self._registry.close(self)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Close the scope.

        When the block raised, close failures are logged and the original
        exception keeps propagating.
        """
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except Exception:
            logger.exception("Failed to close %r while handling %s", self, exc_type.__name__)

    def __contains__(self, resource: object) -> bool:
        return self._resources is not None and _index_by_identity(self._resources, resource) is not None

    def __repr__(self) -> str:
        if self._closed:
            state = "closed"
        elif self._resources is None:
            state = "consumed"
        else:
            state = f"{len(self._resources)} attached"
        tags = ", ".join(sorted(_tag_repr(tag) for tag in self._accept_filter))
        return (
            f"Scope(release_on_close={self._release_on_close}, accept_filter=[{tags}], "
            f"{state}) at {id(self):#x}"
        )

    def _require_resources(self, action: str) -> list[Any]:
        if self._closed:
            msg = f"Cannot {action} closed {self!r}."
            raise RescopeInvalidReuseError(msg)
        if self._resources is None:
            msg = f"Cannot {action} {self!r}: its resources were already released."
            raise RescopeInvalidReuseError(msg)
        return self._resources

    def _holder_of(self, resource: Any) -> Scope | None:
        for scope in self._registry.iterate():
            if scope is not self and not scope.closed and resource in scope:
                return scope
        return None

    def _check_thread(self, action: str) -> None:
        if current_owner()[0] != self._owner[0]:
            msg = f"Cannot {action} {self!r} from a thread that did not open it."
            raise RescopeForeignThreadError(msg)


def type_tag_of(resource: Any) -> Any:
    """Return the ``type_tag`` of ``resource``, falling back to its class."""
    return getattr(resource, "type_tag", type(resource))


def tag_matches(tag: Any, entry: Any) -> bool:
    """Return whether a resource tag satisfies one filter entry."""
    if tag == entry:
        return True
    return isinstance(tag, type) and isinstance(entry, type) and issubclass(tag, entry)


def _index_by_identity(resources: list[Any], resource: object) -> int | None:
    for index, candidate in enumerate(resources):
        if candidate is resource:
            return index
    return None


def _raise_release_errors(errors: list[BaseException]) -> None:
    if not errors:
        return
    if len(errors) == 1:
        raise errors[0]
    for error in errors:
        if not isinstance(error, Exception):
            raise error
    raise RescopeReleaseError(errors) from errors[0]


def _tag_repr(tag: Any) -> str:
    if isinstance(tag, type):
        return tag.__qualname__
    return repr(tag)


__all__ = [
    "Scope",
    "tag_matches",
    "type_tag_of",
]
