"""Decision units: the write side of the runtime.

A decision unit owns one slice of state and turns commands into events::

    dispatch(cmd) → validate → resolve_context → decide(cmd, state, ctx)
                                                    │
                              for each event ───────┤
                                                    ├→ evolve → state
                                                    ├→ state_changes.emit
                                                    └→ events.emit → projectors,
                                                                     reactions,
                                                                     global channel

Ordering
--------
*  Dispatches on one unit are serialized by an ``asyncio.Lock``.  A second
   command waits until the first has evolved and published every event.
*  Each event is evolved and then published before the next event is
   evolved, so subscribers see a per-event progression.
*  Commands produced by reaction units during publication run after the
   lock is released and before ``dispatch`` returns (see ``cascade``).

Failures never cross ``dispatch``.  They are logged and recorded as
``ErrorRecorded`` trace entries; a rejected command is an ordinary event.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from eventfold.core.clock import IClock, WallClock
from eventfold.core.errors import (
    CascadeDepthExceeded,
    ContextResolutionError,
    DecisionError,
    DispatchError,
    EvolutionError,
    PublishError,
    ValidatorError,
)
from eventfold.core.messages import CommandValidationFailed, StateChange
from eventfold.observability.logger import cascade_scope
from eventfold.observability.trace import (
    CommandReceived,
    ContextResolved,
    ErrorRecorded,
    EventProduced,
    StateEvolved,
    TraceEntry,
    publish_trace,
)
from eventfold.runtime import cascade
from eventfold.runtime.channel import EventChannel
from eventfold.validation.commands import CommandValidator

logger = logging.getLogger(__name__)

C = TypeVar("C")
S = TypeVar("S")
X = TypeVar("X")
E = TypeVar("E")

Decide = Callable[[C, S, X], Sequence[E]]
Evolve = Callable[[S, E], S]
ResolveContext = Callable[[C], Union[X, Awaitable[X]]]

DEFAULT_MAX_CASCADE_DEPTH = 32


def command_type(command: Any) -> str:
    """Tag of a command, falling back to its class name."""
    return getattr(command, "type", type(command).__name__)


@dataclass(frozen=True)
class DeciderConfig(Generic[C, S, X, E]):
    """Everything needed to build a decision unit.

    ``resolve_context`` may be sync or async; when omitted the context
    passed to ``decide`` is ``None``.  ``validator`` is optional.
    """

    name: str
    initial_state: S
    decide: Decide[C, S, X, E]
    evolve: Evolve[S, E]
    resolve_context: ResolveContext[C, X] | None = None
    validator: CommandValidator | None = None


class DecisionUnit(Generic[C, S, E]):
    """Owns one state slice and its decide/evolve logic.

    Parameters
    ----------
    config
        The unit's ``DeciderConfig``.
    trace
        Optional channel receiving a ``TraceEntry`` for every pipeline step.
    clock
        Timestamp source for trace entries (default ``WallClock``).
    max_cascade_depth
        Deepest reaction cascade this unit accepts a command from.
    """

    def __init__(
        self,
        config: DeciderConfig[C, S, Any, E],
        *,
        trace: EventChannel[TraceEntry] | None = None,
        clock: IClock | None = None,
        max_cascade_depth: int = DEFAULT_MAX_CASCADE_DEPTH,
    ) -> None:
        self._config = config
        self._state: S = config.initial_state
        self._version = 0
        self._lock = asyncio.Lock()
        self._trace = trace
        self._clock = clock or WallClock()
        self._max_cascade_depth = max_cascade_depth

        self.events: EventChannel[E] = EventChannel(name=f"{config.name}.events")
        self.state_changes: EventChannel[StateChange[S]] = EventChannel(
            name=f"{config.name}.state",
        )

    # -- Accessors ---------------------------------------------------------

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def state(self) -> S:
        """Current write state.  Replaced wholesale on every event."""
        return self._state

    @property
    def version(self) -> int:
        """Number of state replacements so far."""
        return self._version

    @property
    def busy(self) -> bool:
        """Whether a command is currently being processed."""
        return self._lock.locked()

    # -- Dispatch ----------------------------------------------------------

    async def dispatch(self, command: C, *, source: str = "user") -> None:
        """Process *command* and every cascade it triggers.

        Returns once the command's events are evolved and published and
        every reaction-produced command has been dispatched in turn.
        """
        depth = cascade.current_depth()
        if depth == 0:
            with cascade_scope():
                await self._dispatch(command, source, depth)
        else:
            await self._dispatch(command, source, depth)

    async def _dispatch(self, command: C, source: str, depth: int) -> None:
        self._record(CommandReceived(
            timestamp=self._clock.now(),
            unit=self.name,
            command=command,
            source=source,
        ))

        if depth > self._max_cascade_depth:
            exc = CascadeDepthExceeded(
                self.name, command_type(command), depth, self._max_cascade_depth,
            )
            logger.warning("Refusing cascaded command: %s", exc)
            self._record(ErrorRecorded(
                timestamp=self._clock.now(),
                phase="cascade",
                error=exc,
                origin=self.name,
            ))
            return

        with cascade.collecting() as followups:
            async with self._lock:
                await self._process(command)
        await cascade.drain(followups)

    def dispatch_nowait(
        self, command: C, *, source: str = "user",
    ) -> asyncio.Task[None]:
        """Fire-and-forget ``dispatch``.  Requires a running event loop."""
        loop = asyncio.get_running_loop()
        return loop.create_task(self.dispatch(command, source=source))

    async def _process(self, command: C) -> None:
        cfg = self._config
        ctype = command_type(command)

        # --- validation ---------------------------------------------------
        if cfg.validator is not None:
            try:
                result = cfg.validator.validate(command)
            except Exception as exc:
                self._fail(ValidatorError(self.name, ctype, exc))
                return
            if not result.valid:
                rejection = CommandValidationFailed(
                    command=ctype, errors=tuple(result.issues),
                )
                self._record(EventProduced(
                    timestamp=self._clock.now(),
                    unit=self.name,
                    event=rejection,
                    caused_by=command,
                ))
                try:
                    self.events.emit(rejection)  # type: ignore[arg-type]
                except Exception as exc:
                    self._fail(PublishError(self.name, ctype, exc))
                return

        # --- context --------------------------------------------------------
        try:
            context: Any = None
            if cfg.resolve_context is not None:
                context = cfg.resolve_context(command)
                if inspect.isawaitable(context):
                    context = await context
        except Exception as exc:
            self._fail(ContextResolutionError(self.name, ctype, exc))
            return
        self._record(ContextResolved(
            timestamp=self._clock.now(),
            unit=self.name,
            command=command,
            context=context,
        ))

        # --- decide ---------------------------------------------------------
        try:
            emitted = list(cfg.decide(command, self._state, context))
        except Exception as exc:
            self._fail(DecisionError(self.name, ctype, exc))
            return

        # --- evolve + publish, one event at a time --------------------------
        for event in emitted:
            self._record(EventProduced(
                timestamp=self._clock.now(),
                unit=self.name,
                event=event,
                caused_by=command,
            ))
            before = self._state
            try:
                after = cfg.evolve(before, event)
            except Exception as exc:
                self._fail(EvolutionError(self.name, ctype, exc))
                return
            self._state = after
            self._version += 1
            self._record(StateEvolved(
                timestamp=self._clock.now(),
                unit=self.name,
                event=event,
                before=before,
                after=after,
            ))
            try:
                self.state_changes.emit(StateChange(
                    unit=self.name,
                    before=before,
                    after=after,
                    event=event,
                    version=self._version,
                ))
                self.events.emit(event)
            except Exception as exc:
                self._fail(PublishError(self.name, ctype, exc))
                return

    # -- Administrative ----------------------------------------------------

    def restore(self, state: S) -> None:
        """Replace the state wholesale, e.g. from a persisted snapshot.

        Raises ``RuntimeError`` while a command is in flight.
        """
        if self._lock.locked():
            raise RuntimeError(
                f"Cannot restore {self.name!r} while a command is in flight"
            )
        before = self._state
        self._state = state
        self._version += 1
        self.state_changes.emit(StateChange(
            unit=self.name,
            before=before,
            after=state,
            event=None,
            version=self._version,
        ))

    # -- Internals ---------------------------------------------------------

    def _record(self, entry: TraceEntry) -> None:
        publish_trace(self._trace, entry)

    def _fail(self, error: DispatchError) -> None:
        """Log and trace a write-side fault.  Call from an ``except`` block."""
        logger.exception("%s", error)
        self._record(ErrorRecorded(
            timestamp=self._clock.now(),
            phase=error.phase,
            error=error,
            origin=self.name,
        ))

    def __repr__(self) -> str:
        return f"DecisionUnit(name={self.name!r}, version={self._version})"
