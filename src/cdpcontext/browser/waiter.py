"""Predicate-gated, cancellable, timeout-bound waiting for a single event kind."""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from bubus import BaseEvent

from cdpcontext.browser.emitter import CancelScope, EventEmitter
from cdpcontext.exceptions import (
    EventPayloadError,
    PredicateError,
    UsageError,
    WaitCancelledError,
    WaitTimeoutError,
)

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]


class WaiterState(str, Enum):
    IDLE = 'idle'
    SUBSCRIBED = 'subscribed'
    RESOLVED_SUCCESS = 'resolved_success'
    RESOLVED_ERROR = 'resolved_error'
    RESOLVED_TIMEOUT = 'resolved_timeout'
    RESOLVED_CANCELLED = 'resolved_cancelled'

    @property
    def resolved(self) -> bool:
        return self not in (WaiterState.IDLE, WaiterState.SUBSCRIBED)


class EventWaiter:
    """Waits for the first event of one kind that a predicate accepts.

    A waiter is single-use. :meth:`wait` subscribes through the emitter under
    a child of the caller's scope, consumes events in a dedicated task and
    races four outcomes: cancellation of the parent scope, the deadline, an
    accepted event, or a predicate failure. When several are ready at the same
    time cancellation wins, then the consumer's outcome, then the timeout.
    The subscription is released on every exit path.

    The predicate is only ever called from the consumer task, once per
    candidate event, so it never runs concurrently with itself.
    """

    def __init__(self, emitter: EventEmitter, name: str = '', context_id: str | None = None):
        self.emitter = emitter
        self.name = name
        self.context_id = context_id
        self.state = WaiterState.IDLE

    async def wait(
        self,
        parent: CancelScope,
        event_type: type[BaseEvent[Any]],
        predicate: Predicate | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Wait for an event of ``event_type`` and return its payload.

        Args:
            parent: Scope whose cancellation aborts the wait.
            event_type: Event class to wait for.
            predicate: Optional test over the event payload. ``None`` accepts
                the first event.
            timeout: Deadline in milliseconds, ``None`` to wait without one.

        Returns:
            The payload of the accepted event.

        Raises:
            WaitCancelledError: ``parent`` was cancelled first.
            WaitTimeoutError: The deadline elapsed first.
            PredicateError: The predicate raised.
            EventPayloadError: A matching event carried no payload.
        """
        if self.state is not WaiterState.IDLE:
            raise UsageError(
                f'waiter already used (state: {self.state.value})',
                context_id=self.context_id,
                operation='waitForEvent',
            )

        event_name = self.name or event_type.__name__
        scope = parent.child(f'{parent.name}/wait:{event_name}')
        try:
            queue = self.emitter.on(scope, [event_type])
            self.state = WaiterState.SUBSCRIBED

            consumer = asyncio.create_task(self._consume(queue, event_type, predicate))
            cancelled = asyncio.create_task(parent.wait())
            try:
                await asyncio.wait(
                    {consumer, cancelled},
                    timeout=timeout / 1000 if timeout is not None else None,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                for task in (consumer, cancelled):
                    if not task.done():
                        task.cancel()
                await asyncio.gather(consumer, cancelled, return_exceptions=True)

            if parent.cancelled:
                self.state = WaiterState.RESOLVED_CANCELLED
                logger.debug(f'[EventWaiter] {event_name} wait cancelled: {parent.cause!r}')
                raise WaitCancelledError(
                    f'waiting for {event_name!r} was cancelled',
                    cause=parent.cause,
                    context_id=self.context_id,
                    operation='waitForEvent',
                ) from parent.cause

            if consumer.done() and not consumer.cancelled():
                error = consumer.exception()
                if error is not None:
                    self.state = WaiterState.RESOLVED_ERROR
                    logger.debug(f'[EventWaiter] {event_name} wait failed: {error}')
                    raise error
                self.state = WaiterState.RESOLVED_SUCCESS
                logger.debug(f'[EventWaiter] {event_name} wait resolved')
                return consumer.result()

            self.state = WaiterState.RESOLVED_TIMEOUT
            logger.debug(f'[EventWaiter] {event_name} wait timed out after {timeout}ms')
            raise WaitTimeoutError(
                event_name,
                timeout if timeout is not None else 0,
                context_id=self.context_id,
                operation='waitForEvent',
            )
        finally:
            scope.close()

    async def _consume(
        self,
        queue: asyncio.Queue,
        event_type: type[BaseEvent[Any]],
        predicate: Predicate | None,
    ) -> Any:
        while True:
            event = await queue.get()
            if not isinstance(event, event_type):
                continue

            payload = getattr(event, 'payload', None)
            if payload is None:
                raise EventPayloadError(
                    f'{type(event).__name__} did not carry a payload',
                    context_id=self.context_id,
                    operation='waitForEvent',
                )

            if predicate is None:
                return payload

            try:
                accepted = predicate(payload)
            except Exception as e:
                raise PredicateError(
                    f'predicate function failed: {e}',
                    context_id=self.context_id,
                    operation='waitForEvent',
                ) from e

            if accepted:
                return payload
