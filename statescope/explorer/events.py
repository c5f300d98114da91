"""
Exploration events.

The engine reports progress through typed event variants delivered in
emission order to subscribers of an EventBus. Handlers are plain
callables; asyncio consumers can open a queue instead.

Example:
    bus = EventBus()
    bus.subscribe(lambda event: print(event.name))

    queue = bus.open_queue()
    event = await queue.get()
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from statescope.explorer.models import (
    DiscoveredState,
    ExplorationMetrics,
    Interaction,
    Transition,
)
from statescope.observability.logging import get_logger

logger = get_logger("statescope.events")


class _BaseEvent(BaseModel):
    session_id: Optional[str] = None
    explorer: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)


class StateDiscovered(_BaseEvent):
    name: Literal["stateDiscovered"] = "stateDiscovered"
    state: DiscoveredState
    is_new: bool


class TransitionFound(_BaseEvent):
    name: Literal["transitionFound"] = "transitionFound"
    transition: Transition


class InteractionCompleted(_BaseEvent):
    name: Literal["interactionCompleted"] = "interactionCompleted"
    interaction: Interaction


class InteractionFailed(_BaseEvent):
    name: Literal["interactionFailed"] = "interactionFailed"
    interaction: Interaction
    error: str


class ExplorationProgress(_BaseEvent):
    name: Literal["explorationProgress"] = "explorationProgress"
    discovered: int
    depth: int
    frontier_size: int


class ExplorationCompleted(_BaseEvent):
    name: Literal["explorationCompleted"] = "explorationCompleted"
    metrics: ExplorationMetrics
    status: str


class ErrorEvent(_BaseEvent):
    name: Literal["error"] = "error"
    error: str
    context: str
    error_code: Optional[str] = None
    fatal: bool = False


ExplorationEvent = Union[
    StateDiscovered,
    TransitionFound,
    InteractionCompleted,
    InteractionFailed,
    ExplorationProgress,
    ExplorationCompleted,
    ErrorEvent,
]

EventHandler = Callable[[ExplorationEvent], Any]


class EventBus:
    """
    Ordered, synchronous event delivery.

    ``emit`` calls every handler in subscription order before returning,
    so the order seen by each subscriber is the emission order. A handler
    that raises is logged and skipped; it never interrupts exploration.

    Attributes:
        keep_history: Whether emitted events are kept in ``history``
    """

    def __init__(self, keep_history: bool = True) -> None:
        self._handlers: List[EventHandler] = []
        self._filters: Dict[int, Optional[frozenset]] = {}
        self._queues: List[asyncio.Queue] = []
        self.keep_history = keep_history
        self.history: List[ExplorationEvent] = []

    def subscribe(
        self,
        handler: EventHandler,
        names: Optional[List[str]] = None,
    ) -> EventHandler:
        """
        Register a handler.

        Args:
            handler: Callable receiving each event
            names: Optional event names to filter on (e.g. ["stateDiscovered"])

        Returns:
            The handler, so the method can be used as a decorator
        """
        self._handlers.append(handler)
        self._filters[id(handler)] = frozenset(names) if names else None
        return handler

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)
            self._filters.pop(id(handler), None)

    def open_queue(self, maxsize: int = 0) -> asyncio.Queue:
        """Open an asyncio queue that receives every subsequent event."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def close_queue(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def emit(self, event: ExplorationEvent) -> None:
        if self.keep_history:
            self.history.append(event)

        for handler in list(self._handlers):
            wanted = self._filters.get(id(handler))
            if wanted is not None and event.name not in wanted:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed",
                    event=event.name,
                    handler=getattr(handler, "__name__", repr(handler)),
                )

        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Event queue full, dropping event", event=event.name)

    def events_named(self, name: str) -> List[ExplorationEvent]:
        return [e for e in self.history if e.name == name]

    def clear(self) -> None:
        self.history.clear()
