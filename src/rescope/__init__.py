from rescope._internal.attachment import attach_to_scope
from rescope._internal.decorators import scoped
from rescope._internal.registry import ScopeRegistry, scope_registry
from rescope._internal.resources import (
    ReleaseCallback,
    ResourceProtocol,
    ScopedResource,
    release_callback,
)
from rescope._internal.scope import Scope
from rescope._internal.settings import RescopeSettings, configure, get_settings
from rescope.exceptions import (
    RescopeError,
    RescopeForeignThreadError,
    RescopeInvalidAttachmentError,
    RescopeInvalidReuseError,
    RescopeReleaseError,
    RescopeScopeOrderError,
)

__all__ = [
    "ReleaseCallback",
    "RescopeError",
    "RescopeForeignThreadError",
    "RescopeInvalidAttachmentError",
    "RescopeInvalidReuseError",
    "RescopeReleaseError",
    "RescopeScopeOrderError",
    "RescopeSettings",
    "ResourceProtocol",
    "Scope",
    "ScopeRegistry",
    "ScopedResource",
    "attach_to_scope",
    "configure",
    "get_settings",
    "release_callback",
    "scope_registry",
    "scoped",
]
