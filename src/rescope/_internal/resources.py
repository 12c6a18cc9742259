from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from rescope._internal.attachment import attach_to_scope
from rescope._internal.registry import ScopeRegistry, scope_registry

if TYPE_CHECKING:
    from typing_extensions import Self

logger = logging.getLogger(__name__)


@runtime_checkable
class ResourceProtocol(Protocol):
    """Describe what a scope needs from a resource.

    Identity is object identity. ``type_tag`` is matched against a scope's
    ``accept_filter``; objects without one are tagged with their class.
    ``deallocate`` is called at most once by the owning scope.
    """

    type_tag: Any

    def deallocate(self) -> None:
        """Free the underlying resource."""


class ScopedResource:
    """Base class for externally backed objects that opt into scopes on creation.

    ``__init__`` runs the attachment search, so the new object is owned by the
    innermost open scope that accepts it (if any). Subclasses implement
    ``_release`` to free the underlying resource and must call
    ``super().__init__()`` once they are ready to be released.

    The resource keeps no reference to its scope. Deallocating it directly
    detaches it from every open scope of the calling thread first, so a
    released resource is never left attached.

    Examples:
        .. code-block:: python

            class Buffer(ScopedResource):
                def __init__(self, size: int) -> None:
                    self.handle = native.malloc(size)
                    super().__init__()

                def _release(self) -> None:
                    native.free(self.handle)

    """

    type_tag: Any = None
    """Tag used by scope filters. ``None`` means the concrete class."""

    def __init__(self, *, registry: ScopeRegistry | None = None) -> None:
        self._registry = registry if registry is not None else scope_registry
        self._released = False
        attach_to_scope(self, registry=self._registry)

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        inherited = getattr(cls, "type_tag", None)
        if "type_tag" not in cls.__dict__ and (inherited is None or isinstance(inherited, type)):
            cls.type_tag = cls

    @property
    def released(self) -> bool:
        return self._released

    def deallocate(self) -> None:
        """Release the underlying resource once; later calls do nothing."""
        if self._released:
            return
        self._registry.forget(self)
        self._released = True
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Deallocating %r", self)
        self._release()

    def close(self) -> None:
        """Alias of ``deallocate``."""
        self.deallocate()

    def _release(self) -> None:
        raise NotImplementedError

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.deallocate()


class ReleaseCallback(ScopedResource):
    """Run a plain callable when the owning scope releases it."""

    def __init__(
        self,
        callback: Callable[[], Any],
        *,
        type_tag: Any = None,
        registry: ScopeRegistry | None = None,
    ) -> None:
        self._callback = callback
        if type_tag is not None:
            self.type_tag = type_tag
        super().__init__(registry=registry)

    def _release(self) -> None:
        self._callback()

    def __repr__(self) -> str:
        name = getattr(self._callback, "__qualname__", repr(self._callback))
        return f"{type(self).__name__}({name})"


def release_callback(
    callback: Callable[[], Any],
    *,
    type_tag: Any = None,
    registry: ScopeRegistry | None = None,
) -> ReleaseCallback:
    """Wrap ``callback`` as a resource owned by the innermost accepting scope.

    Examples:
        .. code-block:: python

            with Scope():
                handle = native.open_stream()
                release_callback(lambda: native.close_stream(handle))

    """
    return ReleaseCallback(callback, type_tag=type_tag, registry=registry)


__all__ = [
    "ReleaseCallback",
    "ResourceProtocol",
    "ScopedResource",
    "release_callback",
]
