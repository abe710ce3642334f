"""Typed, synchronous publish/subscribe channel.

Design goals
------------
1.  **Snapshot delivery**: ``emit()`` delivers to the listeners registered
    when delivery of that value starts, in registration order.  Listeners
    added during delivery only see later values; listeners removed during
    delivery are skipped.
2.  **Serial emission**: an ``emit()`` issued by a listener on the same
    channel is queued and delivered after the current value has reached
    every listener.  Values are delivered strictly FIFO.
3.  **No swallowing**: listener exceptions propagate to the emitter.  The
    channel resets to idle and drops values still queued by reentrant
    emits; retry policy belongs to the caller.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]
Unsubscribe = Callable[[], None]


class EventChannel(Generic[T]):
    """In-process channel delivering each value to every listener."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._listeners: dict[int, Listener[T]] = {}
        self._ids = itertools.count()
        self._pending: deque[T] = deque()
        self._emitting = False
        self._detach: Unsubscribe | None = None

    # -- Core API ----------------------------------------------------------

    def emit(self, value: T) -> None:
        """Deliver *value* to every listener.

        Reentrant calls (from inside a listener) are queued and drained
        by the outermost call before it returns.
        """
        self._pending.append(value)
        if self._emitting:
            return

        self._emitting = True
        try:
            while self._pending:
                current = self._pending.popleft()
                for token, listener in list(self._listeners.items()):
                    if token in self._listeners:
                        listener(current)
        finally:
            self._emitting = False
            if self._pending:
                logger.warning(
                    "Channel %r dropped %d queued value(s) after a listener error",
                    self.name,
                    len(self._pending),
                )
                self._pending.clear()

    def subscribe(self, listener: Listener[T]) -> Unsubscribe:
        """Register *listener*.  The returned callable is idempotent."""
        token = next(self._ids)
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def filter(self, predicate: Callable[[T], bool]) -> EventChannel[T]:
        """Return a live channel forwarding only values matching *predicate*."""
        derived: EventChannel[T] = EventChannel(
            name=f"{self.name}[filtered]" if self.name else "filtered",
        )

        def forward(value: T) -> None:
            if predicate(value):
                derived.emit(value)

        derived._detach = self.subscribe(forward)
        return derived

    def detach(self) -> None:
        """Stop forwarding from the upstream channel (derived channels only)."""
        if self._detach is not None:
            self._detach()
            self._detach = None

    # -- Observability -----------------------------------------------------

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def is_emitting(self) -> bool:
        return self._emitting

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()
