"""Tests for thread and task confinement of scopes."""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from rescope import RescopeForeignThreadError, Scope, scope_registry
from rescope._internal.registry import ContextOwner, current_owner
from tests.fakes import Handle


class TestThreadConfinement:
    def test_other_threads_do_not_see_open_scopes(self) -> None:
        seen: list[object] = []

        with Scope():

            def inspect_registry() -> None:
                seen.append(scope_registry.innermost())
                seen.append(scope_registry.depth())

            thread = threading.Thread(target=inspect_registry)
            thread.start()
            thread.join()

        assert seen == [None, 0]

    def test_resources_created_in_other_threads_stay_unmanaged(
        self,
        release_log: list[str],
    ) -> None:
        created: list[Handle] = []

        with Scope() as scope:
            thread = threading.Thread(target=lambda: created.append(Handle("t", release_log)))
            thread.start()
            thread.join()

            assert created[0] not in scope

        assert release_log == []

    def test_concurrent_threads_keep_independent_stacks(self) -> None:
        """Every thread releases exactly its own resources, in LIFO order."""
        logs: dict[int, list[str]] = {}
        errors: list[Exception] = []
        barrier = threading.Barrier(8)

        def worker(index: int) -> None:
            log: list[str] = []
            logs[index] = log
            try:
                with Scope() as outer:
                    barrier.wait()
                    Handle(f"{index}-outer", log)
                    with Scope():
                        Handle(f"{index}-inner", log)
                        assert scope_registry.depth() == 2
                    assert scope_registry.innermost() is outer
                assert scope_registry.depth() == 0
            except Exception as e:
                errors.append(e)

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(worker, range(8)))

        assert not errors
        assert logs == {index: [f"{index}-inner", f"{index}-outer"] for index in range(8)}

    def test_attach_from_other_thread_raises(self, release_log: list[str]) -> None:
        errors: list[Exception] = []

        with Scope() as scope:

            def attach_from_other_thread() -> None:
                try:
                    scope.attach(Handle("late", release_log))
                except Exception as e:
                    errors.append(e)

            thread = threading.Thread(target=attach_from_other_thread)
            thread.start()
            thread.join()

            assert scope.resources == ()

        assert len(errors) == 1
        assert isinstance(errors[0], RescopeForeignThreadError)


class TestTaskIsolation:
    @pytest.mark.asyncio
    async def test_child_task_attaches_to_parent_scope(self, release_log: list[str]) -> None:
        with Scope() as parent:

            async def allocate() -> Handle:
                return Handle("child", release_log)

            handle = await asyncio.create_task(allocate())

            assert handle in parent

        assert release_log == ["child"]

    @pytest.mark.asyncio
    async def test_scopes_opened_in_child_task_stay_private(self) -> None:
        with Scope() as parent:
            child_opened = asyncio.Event()
            parent_checked = asyncio.Event()

            async def child() -> None:
                with Scope() as child_scope:
                    assert scope_registry.innermost() is child_scope
                    child_opened.set()
                    await parent_checked.wait()
                assert scope_registry.innermost() is parent

            task = asyncio.create_task(child())
            await child_opened.wait()

            assert scope_registry.innermost() is parent

            parent_checked.set()
            await task

    @pytest.mark.asyncio
    async def test_child_task_cannot_close_parent_scope(self) -> None:
        parent = Scope()

        async def close_parent() -> None:
            parent.close()

        with pytest.raises(RescopeForeignThreadError):
            await asyncio.create_task(close_parent())

        assert parent.closed is False
        parent.close()

    @pytest.mark.asyncio
    async def test_sibling_tasks_do_not_share_scopes(self, release_log: list[str]) -> None:
        async def worker(name: str) -> list[str]:
            with Scope():
                Handle(f"{name}-1", release_log)
                await asyncio.sleep(0)
                Handle(f"{name}-2", release_log)
                await asyncio.sleep(0)
            return [entry for entry in release_log if entry.startswith(name)]

        first, second = await asyncio.gather(worker("a"), worker("b"))

        assert first == ["a-2", "a-1"]
        assert second == ["b-2", "b-1"]

    @pytest.mark.asyncio
    async def test_owner_is_stable_within_a_task(self) -> None:
        assert current_owner() == current_owner()

    @pytest.mark.asyncio
    async def test_finished_task_owner_never_matches_a_new_task(self) -> None:
        async def capture_owner() -> ContextOwner:
            return current_owner()

        finished = await asyncio.create_task(capture_owner())
        fresh = await asyncio.create_task(capture_owner())

        assert finished[0] == fresh[0]
        assert finished != fresh
