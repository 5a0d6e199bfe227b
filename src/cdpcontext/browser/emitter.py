"""Typed pub/sub for browser context events.

Components emit ``bubus`` events on a shared :class:`bubus.EventBus`, and
interested parties subscribe for the lifetime of a :class:`CancelScope`.
Each subscription owns a bounded ``asyncio.Queue``: delivery never blocks the
bus, and when a slow consumer lets its buffer fill up the oldest buffered
event is dropped to make room for the newest one. Events reach a single
subscriber in emission order.
"""

import asyncio
import itertools
import logging
from collections.abc import Callable, Iterable
from typing import Any

from bubus import BaseEvent, EventBus

from cdpcontext.config import CONFIG

logger = logging.getLogger(__name__)

_listener_ids = itertools.count(1)


class CancelScope:
    """Cancellation signal with parent/child propagation.

    A scope is cancelled at most once; the first cause wins. Children derived
    with :meth:`child` are cancelled together with their parent and should be
    released with :meth:`close` once their owner is done with them.
    """

    def __init__(self, name: str = 'scope', parent: 'CancelScope | None' = None):
        self.name = name
        self._parent = parent
        self._cause: BaseException | None = None
        self._cancelled = False
        self._event = asyncio.Event()
        self._callbacks: list[Callable[['CancelScope'], None]] = []

    def __repr__(self) -> str:
        state = 'cancelled' if self._cancelled else 'active'
        return f'<CancelScope {self.name} {state}>'

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def cause(self) -> BaseException | None:
        return self._cause

    def child(self, name: str | None = None) -> 'CancelScope':
        """Derive a scope that is cancelled whenever this one is."""
        scope = CancelScope(name or f'{self.name}/child', parent=self)
        if self._cancelled:
            scope.cancel(self._cause)
        else:
            self.add_callback(scope._cancel_from_parent)
        return scope

    def add_callback(self, callback: Callable[['CancelScope'], None]) -> None:
        """Run ``callback(scope)`` on cancellation, immediately if already cancelled."""
        if self._cancelled:
            callback(self)
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[['CancelScope'], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def cancel(self, cause: BaseException | None = None) -> None:
        """Cancel the scope and everything derived from it."""
        if self._cancelled:
            return
        self._cancelled = True
        self._cause = cause
        self._event.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def close(self) -> None:
        """Release the scope: cancel it and detach it from its parent."""
        self.cancel(self._cause)
        if self._parent is not None:
            self._parent.remove_callback(self._cancel_from_parent)
            self._parent = None

    async def wait(self) -> BaseException | None:
        """Suspend until the scope is cancelled and return the cause."""
        await self._event.wait()
        return self._cause

    def _cancel_from_parent(self, parent: 'CancelScope') -> None:
        self.cancel(parent.cause)


class EventEmitter:
    """Minimal typed pub/sub on top of a bubus EventBus.

    Example:
        >>> emitter = EventEmitter()
        >>> scope = CancelScope('waiter')
        >>> queue = emitter.on(scope, [PageCreatedEvent])
        >>> emitter.emit(PageCreatedEvent(context_id='', target_id='T1', page=page))
        >>> event = await queue.get()
        >>> scope.close()  # deregisters the listener
    """

    def __init__(self, event_bus: EventBus | None = None, buffer_size: int | None = None):
        self.event_bus = event_bus or EventBus()
        self.buffer_size = buffer_size or CONFIG.EVENT_BUFFER_SIZE
        self._stopped = False

    def on(
        self,
        scope: CancelScope,
        event_types: Iterable[type[BaseEvent[Any]]],
        queue: asyncio.Queue | None = None,
    ) -> asyncio.Queue:
        """Register interest in ``event_types`` until ``scope`` ends.

        Args:
            scope: Lifetime of the subscription. The listener is removed from
                the bus as soon as the scope is cancelled or closed.
            event_types: Event classes to deliver.
            queue: Optional caller-owned buffer. A bounded queue of
                ``buffer_size`` is created when omitted.

        Returns:
            The queue events are delivered to.
        """
        if queue is None:
            queue = asyncio.Queue(maxsize=self.buffer_size)

        event_keys = [event_type.__name__ for event_type in event_types]
        if scope.cancelled:
            logger.debug(f'[EventEmitter] Not subscribing {event_keys}: {scope!r} already cancelled')
            return queue

        listener_id = next(_listener_ids)

        async def deliver(event: BaseEvent[Any]) -> None:
            if queue.full():
                dropped = queue.get_nowait()
                logger.debug(
                    f'[EventEmitter] Listener #{listener_id} buffer full, dropping oldest {type(dropped).__name__}'
                )
            queue.put_nowait(event)

        # unique names keep bubus from flagging these as duplicate handlers
        deliver.__name__ = f'deliver_to_listener_{listener_id}'

        for event_type in event_types:
            self.event_bus.on(event_type, deliver)

        def unsubscribe(_scope: CancelScope) -> None:
            for event_key in event_keys:
                handlers = self.event_bus.handlers.get(event_key, [])
                if deliver in handlers:
                    handlers.remove(deliver)
            logger.debug(f'[EventEmitter] Listener #{listener_id} for {event_keys} removed')

        scope.add_callback(unsubscribe)
        logger.debug(f'[EventEmitter] Listener #{listener_id} registered for {event_keys} in {scope!r}')
        return queue

    @property
    def stopped(self) -> bool:
        return self._stopped

    def emit(self, event: BaseEvent[Any]) -> BaseEvent[Any] | None:
        """Deliver ``event`` to every current listener of its type without waiting for them.

        Events emitted after :meth:`stop` are dropped.
        """
        if self._stopped:
            logger.debug(f'[EventEmitter] Dropping {type(event).__name__} emitted after stop')
            return None
        return self.event_bus.dispatch(event)

    def listener_count(self, event_type: type[BaseEvent[Any]]) -> int:
        return len(self.event_bus.handlers.get(event_type.__name__, []))

    async def wait_until_idle(self, timeout: float | None = None) -> None:
        """Wait until every emitted event has been handed to its listeners."""
        if self._stopped:
            return
        await self.event_bus.wait_until_idle(timeout=timeout)

    async def stop(self) -> None:
        """Stop the bus run loop. Calling it again is a no-op."""
        if self._stopped:
            return
        self._stopped = True
        await self.event_bus.stop(clear=True, timeout=5)
