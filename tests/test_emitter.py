"""Tests for cancel scopes and the event emitter.

Validates:

    - Scope cancellation, first-cause-wins and parent/child propagation
    - Detaching closed child scopes from their parent
    - Event delivery in emission order
    - Drop-oldest buffering for slow listeners
    - Listener removal when the subscription scope ends
    - Stopping the bus, and dropping events emitted afterwards
"""

import asyncio

import pytest

from cdpcontext.browser.emitter import CancelScope, EventEmitter
from cdpcontext.browser.events import PageClosedEvent, PageCreatedEvent
from conftest import leftover_tasks


def page_event(payload, target_id="T1"):
    return PageCreatedEvent(context_id="", target_id=target_id, page=payload)


class TestCancelScope:
    """Tests for CancelScope."""

    def test_cancel_records_first_cause(self):
        scope = CancelScope("test")
        first, second = RuntimeError("first"), RuntimeError("second")
        scope.cancel(first)
        scope.cancel(second)
        assert scope.cancelled
        assert scope.cause is first

    def test_child_follows_parent(self):
        parent = CancelScope("parent")
        child = parent.child("child")
        grandchild = child.child()
        cause = RuntimeError("gone")
        parent.cancel(cause)
        assert child.cancelled and child.cause is cause
        assert grandchild.cancelled and grandchild.cause is cause

    def test_child_of_cancelled_parent(self):
        parent = CancelScope("parent")
        parent.cancel(RuntimeError("gone"))
        assert parent.child().cancelled

    def test_child_does_not_cancel_parent(self):
        parent = CancelScope("parent")
        parent.child().cancel()
        assert not parent.cancelled

    def test_close_detaches_from_parent(self):
        """Closed children no longer hold a callback on the parent."""
        parent = CancelScope("parent")
        children = [parent.child() for _ in range(3)]
        for child in children:
            child.close()
        assert all(child.cancelled for child in children)
        assert parent._callbacks == []

    def test_callback_on_cancelled_scope_runs_immediately(self):
        scope = CancelScope()
        scope.cancel()
        seen = []
        scope.add_callback(seen.append)
        assert seen == [scope]

    @pytest.mark.asyncio
    async def test_wait_returns_cause(self):
        scope = CancelScope()
        cause = RuntimeError("done")
        asyncio.get_running_loop().call_later(0.01, scope.cancel, cause)
        assert await asyncio.wait_for(scope.wait(), timeout=1) is cause


class TestEventEmitter:
    """Tests for EventEmitter subscriptions."""

    @pytest.mark.asyncio
    async def test_delivers_in_order(self, emitter):
        scope = CancelScope("listener")
        queue = emitter.on(scope, [PageCreatedEvent])

        for i in range(5):
            emitter.emit(page_event(f"page-{i}"))
        await emitter.wait_until_idle(timeout=5)

        received = [queue.get_nowait().page for _ in range(queue.qsize())]
        assert received == [f"page-{i}" for i in range(5)]
        scope.close()

    @pytest.mark.asyncio
    async def test_only_requested_types(self, emitter):
        scope = CancelScope("listener")
        queue = emitter.on(scope, [PageClosedEvent])

        emitter.emit(page_event("created"))
        emitter.emit(PageClosedEvent(context_id="", target_id="T1", page="closed"))
        await emitter.wait_until_idle(timeout=5)

        assert queue.qsize() == 1
        assert queue.get_nowait().page == "closed"
        scope.close()

    @pytest.mark.asyncio
    async def test_full_buffer_drops_oldest(self, emitter):
        """A slow listener keeps the newest events."""
        emitter.buffer_size = 2
        scope = CancelScope("listener")
        queue = emitter.on(scope, [PageCreatedEvent])

        for i in range(4):
            emitter.emit(page_event(f"page-{i}"))
        await emitter.wait_until_idle(timeout=5)

        assert [queue.get_nowait().page for _ in range(queue.qsize())] == ["page-2", "page-3"]
        scope.close()

    @pytest.mark.asyncio
    async def test_scope_end_removes_listener(self, emitter):
        scope = CancelScope("listener")
        queue = emitter.on(scope, [PageCreatedEvent, PageClosedEvent])
        assert emitter.listener_count(PageCreatedEvent) == 1
        assert emitter.listener_count(PageClosedEvent) == 1

        scope.cancel()
        assert emitter.listener_count(PageCreatedEvent) == 0
        assert emitter.listener_count(PageClosedEvent) == 0

        emitter.emit(page_event("late"))
        await emitter.wait_until_idle(timeout=5)
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_cancelled_scope_never_subscribes(self, emitter):
        scope = CancelScope("listener")
        scope.cancel()
        emitter.on(scope, [PageCreatedEvent])
        assert emitter.listener_count(PageCreatedEvent) == 0

    @pytest.mark.asyncio
    async def test_listeners_are_independent(self, emitter):
        """Every listener gets its own copy of the stream."""
        first_scope, second_scope = CancelScope("first"), CancelScope("second")
        first = emitter.on(first_scope, [PageCreatedEvent])
        second = emitter.on(second_scope, [PageCreatedEvent])

        emitter.emit(page_event("shared"))
        await emitter.wait_until_idle(timeout=5)

        assert first.qsize() == 1
        assert second.qsize() == 1
        first_scope.close()
        assert emitter.listener_count(PageCreatedEvent) == 1
        second_scope.close()

    @pytest.mark.asyncio
    async def test_stop_ends_run_loop(self):
        """A bus that has delivered events leaves no task behind once stopped."""
        baseline = asyncio.all_tasks()
        emitter = EventEmitter()
        scope = CancelScope("listener")
        emitter.on(scope, [PageCreatedEvent])
        emitter.emit(page_event("page-1"))
        await emitter.wait_until_idle(timeout=5)

        await emitter.stop()
        await emitter.stop()

        assert emitter.stopped
        assert await leftover_tasks(baseline) == set()
        scope.close()

    @pytest.mark.asyncio
    async def test_emit_after_stop_dropped(self, emitter):
        scope = CancelScope("listener")
        queue = emitter.on(scope, [PageCreatedEvent])
        await emitter.stop()
        baseline = asyncio.all_tasks()

        assert emitter.emit(page_event("late")) is None
        await emitter.wait_until_idle(timeout=5)

        assert queue.empty()
        assert await leftover_tasks(baseline, wait=0.1) == set()
        scope.close()
