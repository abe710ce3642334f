"""Trace entries recorded while commands flow through a system.

One entry per pipeline step: command received, context resolved, event
produced, state evolved, projection updated, reaction fired, error.

Entries are immutable and purely observational; nothing in the runtime
reads the trace back to make a decision.  ``TraceLog`` keeps the most
recent entries (newest first) and evicts the oldest past its capacity.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Union

from eventfold.core.messages import Envelope
from eventfold.observability.logger import get_logger

if TYPE_CHECKING:
    from eventfold.runtime.channel import EventChannel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandReceived:
    kind: ClassVar[str] = "command"

    timestamp: datetime
    unit: str
    command: Any
    source: str


@dataclass(frozen=True)
class ContextResolved:
    kind: ClassVar[str] = "context"

    timestamp: datetime
    unit: str
    command: Any
    context: Any


@dataclass(frozen=True)
class EventProduced:
    kind: ClassVar[str] = "event"

    timestamp: datetime
    unit: str
    event: Any
    caused_by: Any


@dataclass(frozen=True)
class StateEvolved:
    kind: ClassVar[str] = "evolve"

    timestamp: datetime
    unit: str
    event: Any
    before: Any
    after: Any


@dataclass(frozen=True)
class ProjectionUpdated:
    kind: ClassVar[str] = "projection"

    timestamp: datetime
    projector: str
    event: Any


@dataclass(frozen=True)
class ReactionFired:
    kind: ClassVar[str] = "process-manager"

    timestamp: datetime
    manager: str
    trigger: Any
    commands: tuple[Any, ...]


@dataclass(frozen=True)
class ErrorRecorded:
    kind: ClassVar[str] = "error"

    timestamp: datetime
    phase: str  # validate | context | decide | evolve | publish | project | reaction | cascade
    error: BaseException
    origin: str = ""  # unit, projector or manager name


TraceEntry = Union[
    CommandReceived,
    ContextResolved,
    EventProduced,
    StateEvolved,
    ProjectionUpdated,
    ReactionFired,
    ErrorRecorded,
]


class TraceLog:
    """Bounded, most-recent-first sequence of trace entries."""

    def __init__(self, capacity: int = 200) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._entries: deque[TraceEntry] = deque(maxlen=capacity)

    def record(self, entry: TraceEntry) -> None:
        self._entries.appendleft(entry)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def entries(self, kind: str | None = None) -> tuple[TraceEntry, ...]:
        """Snapshot of entries, newest first, optionally filtered by kind."""
        if kind is None:
            return tuple(self._entries)
        return tuple(e for e in self._entries if e.kind == kind)

    def errors(self) -> tuple[ErrorRecorded, ...]:
        return tuple(e for e in self._entries if isinstance(e, ErrorRecorded))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _tag(value: Any) -> str:
    if isinstance(value, Envelope):
        return f"{value.source_unit}.{_tag(value.event)}"
    return getattr(value, "type", type(value).__name__)


def describe(entry: TraceEntry) -> str:
    """One-line human summary of a trace entry."""
    if isinstance(entry, CommandReceived):
        return f"command {entry.unit} {_tag(entry.command)} ({entry.source})"
    if isinstance(entry, ContextResolved):
        return f"context {entry.unit} {_tag(entry.command)}"
    if isinstance(entry, (EventProduced, StateEvolved)):
        return f"{entry.kind} {entry.unit} {_tag(entry.event)}"
    if isinstance(entry, ProjectionUpdated):
        return f"projection {entry.projector} {_tag(entry.event)}"
    if isinstance(entry, ReactionFired):
        return (
            f"process-manager {entry.manager} {_tag(entry.trigger)} "
            f"-> {len(entry.commands)} command(s)"
        )
    return f"error {entry.phase} {entry.origin}: {entry.error}"


class ConsoleTraceSink:
    """Mirrors trace entries to a structlog logger, one line per step."""

    def __init__(self, logger_name: str = "eventfold.trace") -> None:
        self._log = get_logger(logger_name)

    def __call__(self, entry: TraceEntry) -> None:
        if isinstance(entry, CommandReceived):
            self._log.info(
                "command", unit=entry.unit, command=_tag(entry.command),
                source=entry.source,
            )
        elif isinstance(entry, EventProduced):
            self._log.info("event", unit=entry.unit, event=_tag(entry.event))
        elif isinstance(entry, ReactionFired):
            self._log.info(
                "reaction", manager=entry.manager,
                trigger=_tag(entry.trigger), commands=len(entry.commands),
            )
        elif isinstance(entry, ErrorRecorded):
            self._log.error(
                "error", phase=entry.phase, origin=entry.origin,
                error=repr(entry.error),
            )
        else:
            self._log.debug(entry.kind)


def publish_trace(channel: EventChannel[TraceEntry] | None, entry: TraceEntry) -> None:
    """Emit *entry* on a trace channel.

    Trace consumers are observers: an exception raised by one is logged
    and dropped here so it never reaches the pipeline step being traced.
    """
    if channel is None:
        return
    try:
        channel.emit(entry)
    except Exception:
        logger.exception("Trace consumer failed on %s entry", entry.kind)
