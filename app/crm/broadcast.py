"""
Change broadcaster: in-process fan-out of change events to live observers.

Each observer (one per open event stream) owns a bounded FIFO queue. publish()
never blocks: an observer whose queue is full or already closed is evicted from
the registry and its stream ends. Nothing is persisted or replayed; an event
published while nobody listens is simply dropped.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from flask import Flask, current_app

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CUSTOMER_CREATED = "customer_created"
    CUSTOMER_UPDATED = "customer_updated"
    CUSTOMER_DELETED = "customer_deleted"
    NOTE_CREATED = "note_created"


@dataclass(frozen=True)
class ChangeEvent:
    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": self.payload}

    def to_sse(self) -> str:
        """Format as a Server-Sent Events frame (default "message" event)."""
        return f"data: {json.dumps(self.to_message(), default=str)}\n\n"


class Subscription:
    """Handle returned by Broadcaster.subscribe(); close() unsubscribes."""

    def __init__(self, broadcaster: "Broadcaster", maxsize: int) -> None:
        self._broadcaster = broadcaster
        self._queue: queue.Queue[ChangeEvent] = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: ChangeEvent) -> bool:
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            return False
        return True

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """Next event in publish order, or None on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def mark_closed(self) -> None:
        self._closed.set()

    def close(self) -> None:
        self._closed.set()
        self._broadcaster.unsubscribe(self)


class Broadcaster:
    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = max(1, int(queue_size))
        self._subscribers: set[Subscription] = set()
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self._queue_size)
        with self._lock:
            self._subscribers.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver to every live observer; returns the number that accepted it.
        Enqueueing happens under the lock so all observers see one global order.
        """
        delivered = 0
        with self._lock:
            dead: list[Subscription] = []
            for sub in self._subscribers:
                if sub.offer(event):
                    delivered += 1
                else:
                    dead.append(sub)
            for sub in dead:
                self._subscribers.discard(sub)
                sub.mark_closed()
        if dead:
            logger.warning("Evicted %d stalled or closed event subscriber(s)", len(dead))
        return delivered


def get_broadcaster(app: Flask | None = None) -> Broadcaster:
    app = app or current_app
    return app.extensions["broadcaster"]


def publish_best_effort(event: ChangeEvent, app: Flask | None = None) -> int:
    """Publish without ever failing the caller; problems are logged."""
    try:
        return get_broadcaster(app).publish(event)
    except Exception:
        logger.warning("Broadcast of %s failed", event.type.value, exc_info=True)
        return 0
