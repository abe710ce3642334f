"""Read-model builders folding events into derived read state."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from eventfold.core.clock import IClock, WallClock
from eventfold.observability.trace import (
    ErrorRecorded,
    ProjectionUpdated,
    TraceEntry,
    publish_trace,
)
from eventfold.runtime.channel import EventChannel, Unsubscribe

logger = logging.getLogger(__name__)

R = TypeVar("R")
T = TypeVar("T")

Project = Callable[[R, T], R]


@dataclass(frozen=True)
class ProjectorConfig(Generic[R, T]):
    """``project`` must return the state unchanged for items it ignores."""

    name: str
    initial_state: R
    project: Project[R, T]


class Projector(Generic[R, T]):
    """Subscribes to one channel and keeps ``state`` folded over its items.

    A failing ``project`` call is logged and traced; the read state keeps
    its previous value and the publisher is never affected.
    """

    def __init__(
        self,
        config: ProjectorConfig[R, T],
        source: EventChannel[T],
        *,
        trace: EventChannel[TraceEntry] | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._config = config
        self._state: R = config.initial_state
        self._trace = trace
        self._clock = clock or WallClock()
        self.changes: EventChannel[R] = EventChannel(name=f"{config.name}.state")
        self._unsubscribe: Unsubscribe | None = source.subscribe(self._on_item)

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def state(self) -> R:
        return self._state

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def _on_item(self, item: T) -> None:
        try:
            self._state = self._config.project(self._state, item)
        except Exception as exc:
            logger.exception("Projection %s failed on %s", self.name, _tag(item))
            self._record(ErrorRecorded(
                timestamp=self._clock.now(),
                phase="project",
                error=exc,
                origin=self.name,
            ))
            return
        self._record(ProjectionUpdated(
            timestamp=self._clock.now(),
            projector=self.name,
            event=item,
        ))
        try:
            self.changes.emit(self._state)
        except Exception as exc:
            logger.exception("Listener on projection %s failed", self.name)
            self._record(ErrorRecorded(
                timestamp=self._clock.now(),
                phase="project",
                error=exc,
                origin=self.name,
            ))

    def _record(self, entry: TraceEntry) -> None:
        publish_trace(self._trace, entry)

    def destroy(self) -> None:
        """Stop receiving items.  Idempotent."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __repr__(self) -> str:
        return f"Projector(name={self.name!r}, active={self.active})"


def _tag(item: Any) -> str:
    event = getattr(item, "event", item)
    return getattr(event, "type", type(event).__name__)
