"""Tests for binding new resources to the nearest accepting scope."""

from __future__ import annotations

import pytest

from rescope import RescopeInvalidAttachmentError, Scope, ScopeRegistry, attach_to_scope
from tests.fakes import Buffer, Handle, Kind, PlainResource, Texture


def test_resource_stays_unmanaged_without_open_scopes(release_log: list[str]) -> None:
    resource = PlainResource("loose", release_log)

    assert attach_to_scope(resource) is None


def test_nested_unfiltered_scopes_bind_to_innermost(release_log: list[str]) -> None:
    with Scope() as a, Scope() as b:
        resource = PlainResource("r", release_log)

        assert attach_to_scope(resource) is b
        assert resource in b
        assert resource not in a


def test_filtered_inner_scope_takes_only_matching_resources(release_log: list[str]) -> None:
    with Scope() as everything, Scope(accept_filter={Kind.BUFFER}) as buffers:
        buffer = PlainResource("buffer", release_log, type_tag=Kind.BUFFER)
        texture = PlainResource("texture", release_log, type_tag=Kind.TEXTURE)

        assert attach_to_scope(buffer) is buffers
        assert attach_to_scope(texture) is everything


def test_rejections_do_not_raise_during_search(release_log: list[str]) -> None:
    with Scope(accept_filter={Kind.BUFFER}):
        texture = PlainResource("texture", release_log, type_tag=Kind.TEXTURE)

        assert attach_to_scope(texture) is None


def test_search_stops_at_first_accepting_scope(release_log: list[str]) -> None:
    with Scope(accept_filter={Kind.BUFFER}) as outer, Scope(accept_filter={Kind.BUFFER}) as inner:
        resource = PlainResource("r", release_log, type_tag=Kind.BUFFER)
        attach_to_scope(resource)

        assert inner.resources == (resource,)
        assert outer.resources == ()


def test_consumed_scopes_are_skipped(release_log: list[str]) -> None:
    with Scope() as outer, Scope() as inner:
        inner.release()
        resource = PlainResource("r", release_log)

        assert attach_to_scope(resource) is outer


def test_scoped_resources_search_on_creation(release_log: list[str]) -> None:
    with Scope() as handles, Scope(accept_filter={Buffer}) as buffers:
        buffer = Buffer("buffer", release_log)
        texture = Texture("texture", release_log)
        plain_handle = Handle("handle", release_log)

        assert buffers.resources == (buffer,)
        assert handles.resources == (texture, plain_handle)

    assert release_log == ["buffer", "handle", "texture"]


def test_explicit_registry_is_searched(release_log: list[str]) -> None:
    registry = ScopeRegistry()
    with Scope(registry=registry) as private_scope:
        resource = PlainResource("r", release_log)

        assert attach_to_scope(resource, registry=registry) is private_scope


def test_explicit_attach_still_raises_on_rejection(release_log: list[str]) -> None:
    with Scope(accept_filter={Kind.BUFFER}) as buffers:
        with pytest.raises(RescopeInvalidAttachmentError):
            buffers.attach(PlainResource("texture", release_log, type_tag=Kind.TEXTURE))
        buffers.attach(PlainResource("buffer", release_log, type_tag=Kind.BUFFER))

    assert release_log == ["buffer"]
