"""Counter domain: the smallest complete decider.

Demonstrates sum-typed commands/events/modes, pydantic field constraints
on commands, rejection events and derived views.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import Field

from eventfold.core.clock import IClock, WallClock
from eventfold.core.ids import new_id
from eventfold.core.messages import Command, Event
from eventfold.runtime.decider import DeciderConfig, DecisionUnit
from eventfold.runtime.system import System
from eventfold.runtime.views import DerivedView, select
from eventfold.validation.commands import PydanticCommandValidator

HISTORY_LIMIT = 20
DEFAULT_COUNTDOWN_TARGET = 10

Amount = Annotated[int, Field(ge=1, le=100)]


# =========================================================================
# Commands
# =========================================================================

@dataclass(frozen=True)
class Increment(Command):
    amount: Amount


@dataclass(frozen=True)
class Decrement(Command):
    amount: Amount


@dataclass(frozen=True)
class Reset(Command):
    pass


@dataclass(frozen=True)
class SetCountdownTarget(Command):
    target: Annotated[int, Field(ge=1, le=1000)]


@dataclass(frozen=True)
class ChangeMode(Command):
    mode: Literal["counting", "countdown"]


@dataclass(frozen=True)
class Pause(Command):
    pass


@dataclass(frozen=True)
class Resume(Command):
    pass


COUNTER_COMMANDS = (
    Increment, Decrement, Reset, SetCountdownTarget, ChangeMode, Pause, Resume,
)


# =========================================================================
# Events
# =========================================================================

@dataclass(frozen=True)
class Incremented(Event):
    amount: int
    new_value: int
    timestamp: datetime


@dataclass(frozen=True)
class Decremented(Event):
    amount: int
    new_value: int
    timestamp: datetime


@dataclass(frozen=True)
class CounterReset(Event):
    previous_value: int
    timestamp: datetime


@dataclass(frozen=True)
class CountdownTargetSet(Event):
    target: int
    timestamp: datetime


@dataclass(frozen=True)
class ModeChanged(Event):
    from_mode: str
    to_mode: Literal["counting", "countdown"]
    timestamp: datetime


@dataclass(frozen=True)
class Paused(Event):
    mode: Literal["Counting", "Countdown"]
    timestamp: datetime


@dataclass(frozen=True)
class Resumed(Event):
    timestamp: datetime


@dataclass(frozen=True)
class TargetReached(Event):
    value: int
    timestamp: datetime


@dataclass(frozen=True)
class CounterCommandFailed(Event):
    command: str
    reason: str


# =========================================================================
# State
# =========================================================================

@dataclass(frozen=True)
class Counting:
    started_at: datetime
    kind: Literal["Counting"] = "Counting"


@dataclass(frozen=True)
class Countdown:
    target_value: int
    target_reached_at: datetime | None = None
    kind: Literal["Countdown"] = "Countdown"


@dataclass(frozen=True)
class PausedMode:
    paused_at: datetime
    previous_mode: Literal["Counting", "Countdown"]
    kind: Literal["Paused"] = "Paused"


CounterMode = Union[Counting, Countdown, PausedMode]


@dataclass(frozen=True)
class HistoryEntry:
    kind: str
    timestamp: datetime
    amount: int | None = None
    value: int | None = None


@dataclass(frozen=True)
class Counter:
    id: str
    value: int
    mode: CounterMode
    clicks: int
    history: tuple[HistoryEntry, ...]
    created_at: datetime


@dataclass(frozen=True)
class CounterContext:
    timestamp: datetime


def initial_counter(clock: IClock | None = None) -> Counter:
    now = (clock or WallClock()).now()
    return Counter(
        id=new_id(),
        value=0,
        mode=Counting(started_at=now),
        clicks=0,
        history=(),
        created_at=now,
    )


# =========================================================================
# Decide
# =========================================================================

def _failed(command: Command, reason: str) -> list[Event]:
    return [CounterCommandFailed(command=command.type, reason=reason)]


def decide(cmd: Command, state: Counter, ctx: CounterContext) -> list[Event]:
    if isinstance(cmd, Increment):
        new_value = state.value + cmd.amount
        events: list[Event] = [
            Incremented(amount=cmd.amount, new_value=new_value, timestamp=ctx.timestamp),
        ]
        if isinstance(state.mode, Countdown) and new_value >= state.mode.target_value:
            events.append(TargetReached(value=new_value, timestamp=ctx.timestamp))
        return events

    if isinstance(cmd, Decrement):
        if state.value - cmd.amount < 0:
            return _failed(cmd, "Cannot go below zero")
        return [Decremented(
            amount=cmd.amount,
            new_value=state.value - cmd.amount,
            timestamp=ctx.timestamp,
        )]

    if isinstance(cmd, Reset):
        return [CounterReset(previous_value=state.value, timestamp=ctx.timestamp)]

    if isinstance(cmd, SetCountdownTarget):
        if not isinstance(state.mode, Countdown):
            return _failed(cmd, "Not in countdown mode")
        return [CountdownTargetSet(target=cmd.target, timestamp=ctx.timestamp)]

    if isinstance(cmd, ChangeMode):
        if isinstance(state.mode, PausedMode):
            return []
        if (isinstance(state.mode, Counting) and cmd.mode == "counting") or (
            isinstance(state.mode, Countdown) and cmd.mode == "countdown"
        ):
            return []  # already there
        return [ModeChanged(
            from_mode=state.mode.kind, to_mode=cmd.mode, timestamp=ctx.timestamp,
        )]

    if isinstance(cmd, Pause):
        if isinstance(state.mode, PausedMode):
            return []
        return [Paused(mode=state.mode.kind, timestamp=ctx.timestamp)]

    if isinstance(cmd, Resume):
        if not isinstance(state.mode, PausedMode):
            return _failed(cmd, "Not paused")
        return [Resumed(timestamp=ctx.timestamp)]

    return []


# =========================================================================
# Evolve
# =========================================================================

def _with_history(state: Counter, entry: HistoryEntry) -> tuple[HistoryEntry, ...]:
    return (state.history + (entry,))[-HISTORY_LIMIT:]


def evolve(state: Counter, event: Event) -> Counter:
    if isinstance(event, Incremented):
        return replace(
            state,
            value=event.new_value,
            clicks=state.clicks + 1,
            history=_with_history(state, HistoryEntry(
                kind="Incremented", timestamp=event.timestamp,
                amount=event.amount, value=event.new_value,
            )),
        )

    if isinstance(event, Decremented):
        return replace(
            state,
            value=event.new_value,
            clicks=state.clicks + 1,
            history=_with_history(state, HistoryEntry(
                kind="Decremented", timestamp=event.timestamp,
                amount=event.amount, value=event.new_value,
            )),
        )

    if isinstance(event, CounterReset):
        return replace(
            state,
            value=0,
            clicks=state.clicks + 1,
            history=_with_history(state, HistoryEntry(
                kind="Reset", timestamp=event.timestamp, value=event.previous_value,
            )),
        )

    if isinstance(event, CountdownTargetSet):
        if isinstance(state.mode, Countdown):
            return replace(state, mode=replace(state.mode, target_value=event.target))
        return state

    if isinstance(event, ModeChanged):
        mode: CounterMode = (
            Counting(started_at=event.timestamp)
            if event.to_mode == "counting"
            else Countdown(target_value=DEFAULT_COUNTDOWN_TARGET)
        )
        return replace(
            state,
            mode=mode,
            history=_with_history(state, HistoryEntry(
                kind="ModeChanged", timestamp=event.timestamp,
            )),
        )

    if isinstance(event, Paused):
        return replace(state, mode=PausedMode(
            paused_at=event.timestamp, previous_mode=event.mode,
        ))

    if isinstance(event, Resumed):
        if isinstance(state.mode, PausedMode):
            mode = (
                Counting(started_at=event.timestamp)
                if state.mode.previous_mode == "Counting"
                else Countdown(target_value=DEFAULT_COUNTDOWN_TARGET)
            )
            return replace(state, mode=mode)
        return state

    if isinstance(event, TargetReached):
        if isinstance(state.mode, Countdown):
            return replace(
                state,
                mode=replace(state.mode, target_reached_at=event.timestamp),
                history=_with_history(state, HistoryEntry(
                    kind="TargetReached", timestamp=event.timestamp, value=event.value,
                )),
            )
        return state

    # CounterCommandFailed and anything unknown leave state as is.
    return state


# =========================================================================
# Wiring
# =========================================================================

def counter_config(name: str = "Counter", clock: IClock | None = None) -> DeciderConfig:
    clock = clock or WallClock()

    async def resolve_context(cmd: Command) -> CounterContext:
        return CounterContext(timestamp=clock.now())

    return DeciderConfig(
        name=name,
        initial_state=initial_counter(clock),
        decide=decide,
        evolve=evolve,
        resolve_context=resolve_context,
        validator=PydanticCommandValidator(COUNTER_COMMANDS),
    )


def countdown_progress(state: Counter) -> float:
    """Percent of the countdown target reached (0 outside countdown)."""
    if not isinstance(state.mode, Countdown) or state.mode.target_value == 0:
        return 0.0
    return min(100.0, state.value / state.mode.target_value * 100)


def average_step(state: Counter) -> float:
    return 0.0 if state.clicks == 0 else state.value / state.clicks


@dataclass
class CounterApp:
    system: System
    counter: DecisionUnit
    is_positive: DerivedView
    current_mode: DerivedView
    is_paused: DerivedView
    progress: DerivedView
    recent_history: DerivedView


def build_counter(system: System | None = None, clock: IClock | None = None) -> CounterApp:
    system = system or System(clock=clock)
    counter = system.add_decider(counter_config(clock=clock))
    return CounterApp(
        system=system,
        counter=counter,
        is_positive=select(counter, lambda s: s.value > 0),
        current_mode=select(counter, lambda s: s.mode.kind),
        is_paused=select(counter, lambda s: isinstance(s.mode, PausedMode)),
        progress=select(counter, countdown_progress),
        recent_history=select(counter, lambda s: s.history[-5:]),
    )
