"""Per-session progress bus with a single replaceable subscriber."""

from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Any, Dict, List, Optional

STATUS_INITIALIZING = "Initializing"
STATUS_COMPLETED = "Completed"
STATUS_SUPERSEDED = "Superseded"
ERROR_PREFIX = "Error: "

_MAX_RUNNING_PERCENT = 99.0


@dataclass(frozen=True)
class ProgressEvent:
    sequence: int
    progress: float
    status: str
    current: Optional[int] = None
    target: Optional[int] = None
    terminal: bool = False

    @property
    def bucket(self) -> int:
        return int(self.progress)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"progress": round(self.progress, 1), "status": self.status}
        if self.current is not None:
            payload["current"] = self.current
        if self.target is not None:
            payload["target"] = self.target
        return payload


class _EventBuffer:
    """FIFO that coalesces old non-terminal events once it passes ``capacity``.

    Coalescing keeps every terminal event and the most recent event in each
    whole-percent bucket, in publication order.
    """

    def __init__(self, capacity: int):
        self.capacity = max(1, capacity)
        self._events: List[ProgressEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: ProgressEvent) -> None:
        self._events.append(event)
        if len(self._events) > self.capacity:
            self._coalesce()

    def extend(self, events: List[ProgressEvent]) -> None:
        for event in events:
            self.append(event)

    def _coalesce(self) -> None:
        latest: Dict[int, ProgressEvent] = {}
        for event in self._events:
            if not event.terminal:
                latest[event.bucket] = event
        self._events = [
            event for event in self._events if event.terminal or latest.get(event.bucket) is event
        ]

    def drain(self) -> List[ProgressEvent]:
        events, self._events = self._events, []
        return events

    def clear(self) -> None:
        self._events = []


class ProgressSubscription:
    """Handle returned by ``ProgressBus.subscribe``; read with ``next_batch``."""

    def __init__(self, bus: "ProgressBus", capacity: int):
        self._bus = bus
        self._buffer = _EventBuffer(capacity)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def exhausted(self) -> bool:
        """Closed and every buffered event has been read."""

        with self._bus._cond:
            return self._closed and not self._buffer

    def _push(self, event: ProgressEvent) -> None:
        self._buffer.append(event)

    def next_batch(self, timeout: Optional[float] = None) -> List[ProgressEvent]:
        """Block until events are available, the subscription closes or ``timeout`` passes."""

        with self._bus._cond:
            if not self._buffer and not self._closed:
                self._bus._cond.wait(timeout)
            return self._buffer.drain()

    def close(self) -> None:
        self._bus.unsubscribe(self)


class ProgressBus:
    """Ordered progress events for one session.

    Percent never decreases within a run and only ``Completed`` reaches 100.
    Events of a run in progress published while nobody is subscribed are
    held (with the same coalescing) and handed to the next subscriber. A run
    that finishes unwatched is dropped so a later subscriber follows the
    next run instead of ending on a stale terminal event.
    """

    def __init__(self, capacity: int = 128):
        self.capacity = capacity
        self._cond = threading.Condition()
        self._subscriber: Optional[ProgressSubscription] = None
        self._pending = _EventBuffer(capacity)
        self._percent = 0.0
        self._sequence = 0
        self._closed = False
        self.last_event: Optional[ProgressEvent] = None

    def _publish_locked(self, percent: float, status: str, current=None, target=None, terminal=False) -> ProgressEvent:
        if not terminal or status != STATUS_COMPLETED:
            percent = min(percent, _MAX_RUNNING_PERCENT)
        percent = max(percent, self._percent)
        self._percent = percent
        self._sequence += 1
        event = ProgressEvent(self._sequence, percent, status, current, target, terminal)
        if self._subscriber is not None:
            self._subscriber._push(event)
        elif terminal:
            self._pending.clear()
        else:
            self._pending.append(event)
        self.last_event = event
        self._cond.notify_all()
        return event

    def begin(self) -> ProgressEvent:
        """Start a new run: reset the percent floor and emit ``Initializing``."""

        with self._cond:
            self._percent = 0.0
            self._pending.clear()
            return self._publish_locked(0.0, STATUS_INITIALIZING)

    def publish(
        self,
        percent: float,
        status: str,
        current: Optional[int] = None,
        target: Optional[int] = None,
    ) -> ProgressEvent:
        with self._cond:
            return self._publish_locked(percent, status, current, target)

    def complete(self) -> ProgressEvent:
        with self._cond:
            return self._publish_locked(100.0, STATUS_COMPLETED, terminal=True)

    def fail(self, reason: str) -> ProgressEvent:
        with self._cond:
            return self._publish_locked(self._percent, f"{ERROR_PREFIX}{reason}", terminal=True)

    def subscribe(self) -> ProgressSubscription:
        """Attach a new subscriber, ending the previous one with ``Superseded``."""

        with self._cond:
            previous = self._subscriber
            if previous is not None:
                self._sequence += 1
                previous._push(
                    ProgressEvent(self._sequence, self._percent, STATUS_SUPERSEDED, terminal=True)
                )
                previous._closed = True
            subscription = ProgressSubscription(self, self.capacity)
            subscription._buffer.extend(self._pending.drain())
            if self._closed:
                subscription._closed = True
            self._subscriber = subscription
            self._cond.notify_all()
            return subscription

    def unsubscribe(self, subscription: ProgressSubscription) -> None:
        with self._cond:
            subscription._closed = True
            if self._subscriber is subscription:
                self._subscriber = None
            self._cond.notify_all()

    @property
    def has_subscriber(self) -> bool:
        return self._subscriber is not None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            if self._subscriber is not None:
                self._subscriber._closed = True
                self._subscriber = None
            self._cond.notify_all()
