"""Derived views over decider state.

``select(unit, selector)`` returns a ``DerivedView`` whose ``value`` is
``selector(unit.state)``, recomputed lazily whenever the unit's state
version has moved since the last read.  Subscribers are pushed the new
value after a state change, but only when it differs from the last one
they were given.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic, TypeVar

from eventfold.core.messages import StateChange
from eventfold.runtime.channel import EventChannel, Listener, Unsubscribe
from eventfold.runtime.decider import DecisionUnit

S = TypeVar("S")
V = TypeVar("V")

_UNSET: Any = object()


class DerivedView(Generic[S, V]):
    """Read-only projection of one decider's current state."""

    def __init__(self, unit: DecisionUnit[Any, S, Any], selector: Callable[[S], V]) -> None:
        self._unit = unit
        self._selector = selector
        self._cached: V = _UNSET
        self._cached_version = -1
        self._last_pushed: V = _UNSET
        self._changes: EventChannel[V] = EventChannel(name=f"{unit.name}.view")
        self._unsubscribe: Unsubscribe | None = None

    @property
    def value(self) -> V:
        if self._cached_version != self._unit.version:
            self._cached = self._selector(self._unit.state)
            self._cached_version = self._unit.version
        return self._cached

    def subscribe(self, listener: Listener[V]) -> Unsubscribe:
        """Receive the new value after each state change that alters it."""
        if self._unsubscribe is None:
            self._last_pushed = self.value
            self._unsubscribe = self._unit.state_changes.subscribe(self._on_change)
        return self._changes.subscribe(listener)

    def _on_change(self, change: StateChange[S]) -> None:
        current = self.value
        if current == self._last_pushed:
            return
        self._last_pushed = current
        self._changes.emit(current)

    def close(self) -> None:
        """Release the state subscription and every listener.  Idempotent."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._changes.clear()


def select(unit: DecisionUnit[Any, S, Any], selector: Callable[[S], V]) -> DerivedView[S, V]:
    """Derive a view from *unit*'s state through a pure *selector*."""
    return DerivedView(unit, selector)
