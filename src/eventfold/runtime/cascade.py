"""Cascade queue shared by deciders and reaction units.

Commands returned by a reaction while a decider publishes its events are
not dispatched from inside the publishing call stack.  They are collected
in the queue of the dispatch that is currently publishing and run, in
order, once that decider has released its lock.  Nested cascades run
depth-first inside the drain of their parent.

The queue and the current depth live in context variables, so concurrent
dispatch tasks never see each other's cascades.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from eventfold.runtime.decider import DecisionUnit


@dataclass(frozen=True)
class PendingCommand:
    """A command a reaction unit produced for a target decider."""

    target: DecisionUnit
    command: Any
    source: str


_queue: ContextVar[list[PendingCommand] | None] = ContextVar(
    "eventfold_cascade_queue", default=None,
)
_depth: ContextVar[int] = ContextVar("eventfold_cascade_depth", default=0)


def current_depth() -> int:
    """Nesting level of the running dispatch (0 for a caller's dispatch)."""
    return _depth.get()


@contextmanager
def collecting() -> Iterator[list[PendingCommand]]:
    """Open a fresh cascade queue for the duration of the block."""
    queue: list[PendingCommand] = []
    token = _queue.set(queue)
    try:
        yield queue
    finally:
        _queue.reset(token)


def enqueue(pending: PendingCommand) -> bool:
    """Append to the active queue.  Returns ``False`` outside any dispatch."""
    queue = _queue.get()
    if queue is None:
        return False
    queue.append(pending)
    return True


async def drain(queue: list[PendingCommand]) -> None:
    """Dispatch every queued command one level deeper, in order."""
    depth = _depth.get() + 1
    for pending in queue:
        token = _depth.set(depth)
        try:
            await pending.target.dispatch(pending.command, source=pending.source)
        finally:
            _depth.reset(token)
