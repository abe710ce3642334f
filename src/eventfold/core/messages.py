"""Canonical message types: commands, events and the envelopes around them.

Design invariants
-----------------
1.  Every command and event is **immutable** (``frozen=True``).
2.  The tag of a message is its class name; its payload is its fields.
    One subclass per command/event kind, matched with ``match`` or
    ``isinstance`` in ``decide`` / ``evolve`` / ``project`` / ``react``.
3.  ``CommandValidationFailed`` is the only event the runtime synthesizes
    itself.  It is published but never folded into decider state.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Generic, TypeVar

S = TypeVar("S")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Message:
    """Immutable tagged value."""

    @property
    def type(self) -> str:
        """Tag of this message (the concrete class name)."""
        return type(self).__name__

    @property
    def payload(self) -> dict[str, Any]:
        """Shallow field mapping, in declaration order."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Command(Message):
    """Intent.  May be rejected."""


@dataclass(frozen=True)
class Event(Message):
    """Fact already decided.  Never retracted."""


# ---------------------------------------------------------------------------
# Validation rejection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationIssue:
    """One structured validation error."""

    loc: tuple[str | int, ...] = ()
    message: str = ""
    code: str = ""

    @property
    def path(self) -> str:
        """Dotted field path; empty for command-level issues."""
        return ".".join(str(part) for part in self.loc)


@dataclass(frozen=True)
class CommandValidationFailed(Event):
    """A command failed validation before reaching ``decide``."""

    command: str = ""
    errors: tuple[ValidationIssue, ...] = ()


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Envelope:
    """An event tagged with the decider that produced it.

    Item type of ``System.all_events``.
    """

    source_unit: str
    event: Event


@dataclass(frozen=True)
class StateChange(Generic[S]):
    """Notification that a decider replaced its state."""

    unit: str
    before: S
    after: S
    event: Event | None
    version: int
