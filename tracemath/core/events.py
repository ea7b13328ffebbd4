# tracemath/core/events.py
"""
Per-trace notification bus.

Observers register explicitly and get a Subscription handle back; the handle
is the only way to unregister. Events are discrete messages delivered in
publish order: an event published while another one is being delivered is
queued and delivered afterwards, never nested inside the current delivery.
"""
from __future__ import annotations

import itertools
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable

from loguru import logger


class EventKind(Enum):
    DATA_CHANGED = "data_changed"
    DELETED = "deleted"
    TYPE_CHANGED = "type_changed"
    CLEARED = "cleared"
    NAME_CHANGED = "name_changed"
    COLOR_CHANGED = "color_changed"
    VISIBILITY_CHANGED = "visibility_changed"
    PAUSE_CHANGED = "pause_changed"
    STATUS_CHANGED = "status_changed"


@dataclass(frozen=True, slots=True)
class Event:
    """A notification; `begin`/`end` is the index range for DATA_CHANGED."""

    kind: EventKind
    sender: Any
    begin: int = 0
    end: int = 0


@dataclass(frozen=True, slots=True)
class Subscription:
    id: int
    kinds: frozenset[EventKind] | None = None

    def accepts(self, kind: EventKind) -> bool:
        return self.kinds is None or kind in self.kinds


Callback = Callable[[Event], None]

_subscription_ids = itertools.count(1)


class EventBus:
    def __init__(self) -> None:
        self._observers: dict[int, tuple[Subscription, Callback]] = {}
        self._queue: deque[Event] = deque()
        self._delivering = False

    def __len__(self) -> int:
        return len(self._observers)

    def subscribe(
        self,
        callback: Callback,
        kinds: EventKind | Iterable[EventKind] | None = None,
    ) -> Subscription:
        if isinstance(kinds, EventKind):
            kinds = (kinds,)
        sub = Subscription(
            id=next(_subscription_ids),
            kinds=None if kinds is None else frozenset(kinds),
        )
        self._observers[sub.id] = (sub, callback)
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self._observers.pop(subscription.id, None) is not None

    def clear(self) -> None:
        self._observers.clear()

    def publish(self, event: Event) -> None:
        self._queue.append(event)
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._queue:
                self._deliver(self._queue.popleft())
        finally:
            self._delivering = False

    def _deliver(self, event: Event) -> None:
        for sub_id, (sub, callback) in list(self._observers.items()):
            # observers removed by an earlier callback of this delivery are skipped
            if sub_id not in self._observers or not sub.accepts(event.kind):
                continue
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Observer {} failed while handling {} from {!r}",
                    sub_id, event.kind.value, event.sender,
                )
