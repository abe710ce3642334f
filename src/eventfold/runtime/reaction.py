"""Reaction units (process managers): turn one unit's events into
commands for another unit.

``react`` is pure: no I/O, no awaiting.  The commands it returns are
queued on the cascade of the dispatch that published the triggering event
and dispatched to the target, in order, before that dispatch returns.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from eventfold.core.clock import IClock, WallClock
from eventfold.observability.trace import (
    ErrorRecorded,
    ReactionFired,
    TraceEntry,
    publish_trace,
)
from eventfold.runtime import cascade
from eventfold.runtime.channel import EventChannel, Unsubscribe

if TYPE_CHECKING:
    from eventfold.runtime.decider import DecisionUnit

logger = logging.getLogger(__name__)

E = TypeVar("E")
C = TypeVar("C")

React = Callable[[E], Sequence[C]]


@dataclass(frozen=True)
class ReactionConfig(Generic[E, C]):
    name: str
    filter: Callable[[E], bool]
    react: React[E, C]


class ReactionUnit(Generic[E, C]):
    """Wires ``source.events`` to ``target.dispatch`` through ``react``."""

    def __init__(
        self,
        config: ReactionConfig[E, C],
        source: DecisionUnit,
        target: DecisionUnit,
        *,
        trace: EventChannel[TraceEntry] | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._target = target
        self._trace = trace
        self._clock = clock or WallClock()
        self._fired = 0
        self._background: set[asyncio.Task[None]] = set()
        self._unsubscribe: Unsubscribe | None = source.events.subscribe(self._on_event)

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def source(self) -> DecisionUnit:
        return self._source

    @property
    def target(self) -> DecisionUnit:
        return self._target

    @property
    def fired(self) -> int:
        """How many events produced a reaction (including empty ones)."""
        return self._fired

    def _on_event(self, event: E) -> None:
        try:
            if not self._config.filter(event):
                return
            commands = tuple(self._config.react(event))
            self._fired += 1
            self._record(ReactionFired(
                timestamp=self._clock.now(),
                manager=self.name,
                trigger=event,
                commands=commands,
            ))
            for command in commands:
                self._forward(command)
        except Exception as exc:
            logger.exception("Reaction %s failed", self.name)
            self._record(ErrorRecorded(
                timestamp=self._clock.now(),
                phase="reaction",
                error=exc,
                origin=self.name,
            ))

    def _forward(self, command: C) -> None:
        pending = cascade.PendingCommand(
            target=self._target, command=command, source=self.name,
        )
        if cascade.enqueue(pending):
            return
        # Event emitted outside any dispatch: hand it to the running loop.
        task = asyncio.get_running_loop().create_task(
            self._target.dispatch(command, source=self.name),
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _record(self, entry: TraceEntry) -> None:
        publish_trace(self._trace, entry)

    def destroy(self) -> None:
        """Stop reacting.  Idempotent."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __repr__(self) -> str:
        return (
            f"ReactionUnit(name={self.name!r}, "
            f"{self._source.name!r} -> {self._target.name!r})"
        )
