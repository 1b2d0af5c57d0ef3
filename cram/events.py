"""Process-wide event bus for progress notifications.

Every subscriber receives every event, in publish order, and filters on
``event.type`` itself. Two consumer styles are supported:

* ``bus.on(callback)`` registers a synchronous listener and returns an
  ``unsubscribe`` callable;
* ``bus.subscribe()`` returns a :class:`Subscription`, an ``asyncio.Queue``
  backed channel that can be awaited or iterated with ``async for``.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

SESSION_STARTED = "session:started"
SESSION_STOPPED = "session:stopped"
SESSION_ERROR = "session:error"
PROVIDER_REQUEST = "provider:request"
PROVIDER_RESPONSE = "provider:response"
PROVIDER_ERROR = "provider:error"
STRATEGY_PHASE_STARTED = "strategy:phaseStarted"
STRATEGY_PHASE_COMPLETED = "strategy:phaseCompleted"
MEETING_STARTED = "meeting:started"
MEETING_TURN = "meeting:turn"
MEETING_DECISION = "meeting:decision"
MEETING_COMPLETED = "meeting:completed"
PIPELINE_STARTED = "pipeline:started"
PIPELINE_STAGE_STARTED = "pipeline:stageStarted"
PIPELINE_STAGE_COMPLETED = "pipeline:stageCompleted"
PIPELINE_COMPLETED = "pipeline:completed"
FILE_GENERATED = "file:generated"


@dataclass(frozen=True)
class Event:
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


# What engine components receive instead of the bus itself
Emit = Callable[[str, dict[str, Any]], None]


def null_emit(event_type: str, data: dict[str, Any]) -> None:
    """Sink that discards events; the default for components run standalone."""


class Subscription:
    """Queue-backed view of the bus for one consumer."""

    def __init__(self, bus: "EventBus", maxsize: int = 0) -> None:
        self._bus = bus
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def _deliver(self, event: Event) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Subscriber queue full, dropping %s event", event.type)

    async def get(self) -> Event | None:
        """Wait for the next event; None once the subscription is closed."""
        return await self._queue.get()

    def get_nowait(self) -> Event | None:
        """Return the next queued event or None when nothing is waiting."""
        try:
            event = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return event

    def drain(self) -> list[Event]:
        events: list[Event] = []
        while (event := self.get_nowait()) is not None:
            events.append(event)
        return events

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bus._detach(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBus:
    """Multi-subscriber publish channel."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[Event], None]] = []
        self._subscriptions: list[Subscription] = []

    def on(self, callback: Callable[[Event], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def subscribe(self, maxsize: int = 0) -> Subscription:
        subscription = Subscription(self, maxsize=maxsize)
        self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners) + len(self._subscriptions)

    def publish(self, event_type: str, data: dict[str, Any] | None = None) -> Event:
        event = Event(type=event_type, data=dict(data or {}))
        logger.debug("Event %s %s", event.type, sorted(event.data))
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed on %s", event.type)
        for subscription in list(self._subscriptions):
            subscription._deliver(event)
        return event

    def emitter(self, **extra: Any) -> Emit:
        """Return an ``Emit`` sink that stamps ``extra`` onto every event's data."""

        def emit(event_type: str, data: dict[str, Any]) -> None:
            self.publish(event_type, {**extra, **data})

        return emit
