"""
Endb Event Bus: publish/subscribe for facade events.

Each Endb facade owns one bus. Adapter faults are relayed onto it as
``error`` events so they never fail unrelated in-flight calls.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from typing import Awaitable, Callable, Union

from endb.core.events import Event

logger = logging.getLogger(__name__)

# Handlers may be coroutine functions or plain callables
EventHandler = Callable[[Event], Union[Awaitable[None], None]]


class EventBus:
    """
    Publish/subscribe event bus.

    Usage:
        bus = EventBus()

        # Subscribe
        bus.on("error", my_handler)
        bus.on("adapter:*", my_wildcard_handler)
        bus.on("*", my_catch_all_handler)

        # Emit
        await bus.emit(Event(type="error", data={"error": exc}))
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._pending: set[asyncio.Task] = set()

    # ━━━ Subscription ━━━

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to an event type. Supports wildcards: 'adapter:*', '*'."""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        if event_type in self._subscribers:
            self._subscribers[event_type] = [
                h for h in self._subscribers[event_type] if h != handler
            ]
            if not self._subscribers[event_type]:
                del self._subscribers[event_type]

    # ━━━ Emission ━━━

    async def emit(self, event: Event) -> Event:
        """
        Deliver an event to every matching subscriber.

        Subscribers execute concurrently. Subscriber errors are logged,
        never propagated to the emitter.
        """
        handlers = self._find_handlers(event.type)
        if handlers:
            results = await asyncio.gather(
                *(self._call_handler(h, event) for h in handlers),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.error(
                        f"Subscriber error for {event.type}: {result}",
                        exc_info=result,
                    )
        return event

    def emit_nowait(self, event: Event) -> None:
        """
        Emit an event without waiting for processing.

        Used from synchronous error callbacks. Errors are logged but not
        raised.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop; log and skip
            logger.debug(f"No event loop for nowait emit: {event.type}")
            return
        task = loop.create_task(self._emit_safe(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every event scheduled with emit_nowait to be delivered."""
        while self._pending:
            batch = list(self._pending)
            await asyncio.gather(*batch, return_exceptions=True)
            self._pending.difference_update(batch)

    # ━━━ Internals ━━━

    def _find_handlers(self, event_type: str) -> list[EventHandler]:
        """Find all handlers matching an event type, including wildcards."""
        handlers: list[EventHandler] = []

        for pattern, subs in self._subscribers.items():
            if pattern == event_type or pattern == "*":
                handlers.extend(subs)
            elif "*" in pattern and fnmatch.fnmatch(event_type, pattern):
                handlers.extend(subs)

        return handlers

    @staticmethod
    async def _call_handler(handler: EventHandler, event: Event) -> None:
        result = handler(event)
        if asyncio.iscoroutine(result):
            await result

    async def _emit_safe(self, event: Event) -> None:
        """Emit with error catching for fire-and-forget."""
        try:
            await self.emit(event)
        except Exception as e:
            logger.error(f"Error in nowait emit for {event.type}: {e}")

    def listener_count(self, event_type: str) -> int:
        """Number of handlers that would receive ``event_type``."""
        return len(self._find_handlers(event_type))

    @property
    def subscriber_count(self) -> int:
        """Total number of subscriptions (for debugging)."""
        return sum(len(subs) for subs in self._subscribers.values())
