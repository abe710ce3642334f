"""Tests for the counter domain's pure decide/evolve functions."""

from __future__ import annotations

from datetime import datetime, timezone

from eventfold.core.clock import SimClock
from eventfold.examples.counter import (
    HISTORY_LIMIT,
    ChangeMode,
    CounterCommandFailed,
    CounterContext,
    Countdown,
    CountdownTargetSet,
    Counting,
    Decrement,
    Decremented,
    Increment,
    Incremented,
    ModeChanged,
    Pause,
    Paused,
    PausedMode,
    Reset,
    Resume,
    SetCountdownTarget,
    TargetReached,
    average_step,
    countdown_progress,
    decide,
    evolve,
    initial_counter,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
CTX = CounterContext(timestamp=T0)


def _run(state, *commands):
    for cmd in commands:
        for event in decide(cmd, state, CTX):
            state = evolve(state, event)
    return state


def _fresh():
    return initial_counter(SimClock(start=T0))


class TestDecide:
    def test_increment(self):
        assert decide(Increment(amount=3), _fresh(), CTX) == [
            Incremented(amount=3, new_value=3, timestamp=T0),
        ]

    def test_decrement_below_zero_rejected(self):
        assert decide(Decrement(amount=1), _fresh(), CTX) == [
            CounterCommandFailed(command="Decrement", reason="Cannot go below zero"),
        ]

    def test_decrement(self):
        state = _run(_fresh(), Increment(amount=5))
        assert decide(Decrement(amount=2), state, CTX) == [
            Decremented(amount=2, new_value=3, timestamp=T0),
        ]

    def test_countdown_target_requires_countdown_mode(self):
        [event] = decide(SetCountdownTarget(target=5), _fresh(), CTX)
        assert event.reason == "Not in countdown mode"

    def test_increment_reaching_target_adds_target_reached(self):
        state = _run(_fresh(), ChangeMode(mode="countdown"), SetCountdownTarget(target=3))
        events = decide(Increment(amount=3), state, CTX)
        assert [e.type for e in events] == ["Incremented", "TargetReached"]

    def test_change_to_current_mode_is_noop(self):
        assert decide(ChangeMode(mode="counting"), _fresh(), CTX) == []

    def test_change_mode_while_paused_is_noop(self):
        state = _run(_fresh(), Pause())
        assert decide(ChangeMode(mode="countdown"), state, CTX) == []

    def test_resume_when_not_paused_rejected(self):
        [event] = decide(Resume(), _fresh(), CTX)
        assert event == CounterCommandFailed(command="Resume", reason="Not paused")


class TestEvolve:
    def test_reset(self):
        state = _run(_fresh(), Increment(amount=4), Reset())
        assert state.value == 0
        assert state.clicks == 2
        assert state.history[-1].kind == "Reset"

    def test_mode_change_to_countdown_uses_default_target(self):
        state = _run(_fresh(), ChangeMode(mode="countdown"))
        assert state.mode == Countdown(target_value=10)

    def test_target_reached_is_recorded(self):
        state = _run(
            _fresh(), ChangeMode(mode="countdown"), SetCountdownTarget(target=2), Increment(amount=2),
        )
        assert state.mode.target_reached_at == T0
        assert state.history[-1].kind == "TargetReached"

    def test_pause_and_resume_restore_previous_mode(self):
        state = _run(_fresh(), ChangeMode(mode="countdown"), Pause())
        assert state.mode == PausedMode(paused_at=T0, previous_mode="Countdown")
        state = _run(state, Resume())
        assert isinstance(state.mode, Countdown)

    def test_history_is_capped(self):
        state = _run(_fresh(), *[Increment(amount=1) for _ in range(HISTORY_LIMIT + 5)])
        assert len(state.history) == HISTORY_LIMIT
        assert state.history[-1].value == HISTORY_LIMIT + 5

    def test_ignored_events_return_same_state(self):
        state = _fresh()
        assert evolve(state, CounterCommandFailed(command="x", reason="y")) is state
        assert evolve(state, CountdownTargetSet(target=3, timestamp=T0)) is state
        assert evolve(state, TargetReached(value=1, timestamp=T0)) is state

    def test_mode_changed_back_to_counting(self):
        state = evolve(_fresh(), ModeChanged(from_mode="Countdown", to_mode="counting", timestamp=T0))
        assert state.mode == Counting(started_at=T0)

    def test_paused_event(self):
        state = evolve(_fresh(), Paused(mode="Counting", timestamp=T0))
        assert state.mode.kind == "Paused"


class TestHelpers:
    def test_countdown_progress(self):
        assert countdown_progress(_fresh()) == 0.0
        state = _run(_fresh(), ChangeMode(mode="countdown"), Increment(amount=5))
        assert countdown_progress(state) == 50.0
        state = _run(state, Increment(amount=20))
        assert countdown_progress(state) == 100.0

    def test_average_step(self):
        assert average_step(_fresh()) == 0.0
        assert average_step(_run(_fresh(), Increment(amount=2), Increment(amount=4))) == 3.0
