"""Tests for ``runtime/reaction.py`` and ``runtime/cascade.py``."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from eventfold.core.config import Settings
from eventfold.core.errors import CascadeDepthExceeded
from eventfold.core.messages import Command, Event
from eventfold.observability.trace import ReactionFired
from eventfold.runtime import cascade
from eventfold.runtime.decider import DeciderConfig
from eventfold.runtime.reaction import ReactionConfig
from eventfold.runtime.system import System


@dataclass(frozen=True)
class Ping(Command):
    n: int


@dataclass(frozen=True)
class Pinged(Event):
    n: int


def _recorder(name: str) -> DeciderConfig:
    """Decider whose state is the tuple of ``n`` values it has seen."""
    return DeciderConfig(
        name=name,
        initial_state=(),
        decide=lambda cmd, state, ctx: [Pinged(n=cmd.n)],
        evolve=lambda state, event: state + (event.n,),
    )


forward = ReactionConfig(
    name="Forward",
    filter=lambda event: isinstance(event, Pinged),
    react=lambda event: [Ping(n=event.n + 1)],
)


class TestReaction:
    async def test_cascade_completes_before_dispatch_returns(self, system):
        a = system.add_decider(_recorder("A"))
        b = system.add_decider(_recorder("B"))
        system.add_process_manager(forward, a, b)

        await a.dispatch(Ping(n=1))

        assert a.state == (1,)
        assert b.state == (2,)

    async def test_filter_excludes_events(self, system):
        a = system.add_decider(_recorder("A"))
        b = system.add_decider(_recorder("B"))
        reaction = system.add_process_manager(
            ReactionConfig(name="Odd", filter=lambda e: e.n % 2 == 1, react=lambda e: [Ping(n=e.n)]),
            a, b,
        )

        await a.dispatch(Ping(n=2))
        await a.dispatch(Ping(n=3))

        assert b.state == (3,)
        assert reaction.fired == 1

    async def test_commands_dispatch_in_returned_order_after_the_whole_batch(self, system):
        batch = DeciderConfig(
            name="Batch",
            initial_state=(),
            decide=lambda cmd, state, ctx: [Pinged(n=cmd.n), Pinged(n=cmd.n + 10)],
            evolve=lambda state, event: state + (event.n,),
        )
        a = system.add_decider(batch)
        b = system.add_decider(_recorder("B"))
        seen_by_b: list[tuple] = []

        def react(event):
            seen_by_b.append(a.state)
            return [Ping(n=event.n), Ping(n=-event.n)]

        system.add_process_manager(
            ReactionConfig(name="Fan", filter=lambda e: True, react=react), a, b,
        )

        await a.dispatch(Ping(n=1))

        assert b.state == (1, -1, 11, -11)
        # react ran as each event was published; the source had already evolved it.
        assert seen_by_b == [(1,), (1, 11)]

    async def test_reaction_fired_is_traced_with_commands(self, system):
        a = system.add_decider(_recorder("A"))
        b = system.add_decider(_recorder("B"))
        system.add_process_manager(forward, a, b)

        await a.dispatch(Ping(n=1))

        [fired] = system.trace_entries("process-manager")
        assert isinstance(fired, ReactionFired)
        assert fired.manager == "Forward"
        assert fired.commands == (Ping(n=2),)
        received = [e for e in system.trace_entries("command") if e.unit == "B"]
        assert received[0].source == "Forward"

    async def test_throwing_react_is_isolated(self, system):
        a = system.add_decider(_recorder("A"))
        b = system.add_decider(_recorder("B"))

        def react(event):
            raise RuntimeError("bad reaction")

        system.add_process_manager(ReactionConfig(name="Bad", filter=lambda e: True, react=react), a, b)
        system.add_process_manager(forward, a, b)

        await a.dispatch(Ping(n=1))

        assert a.state == (1,)
        assert b.state == (2,)
        [error] = system.errors()
        assert error.phase == "reaction"
        assert error.origin == "Bad"

    async def test_destroyed_reaction_stops_forwarding(self, system):
        a = system.add_decider(_recorder("A"))
        b = system.add_decider(_recorder("B"))
        reaction = system.add_process_manager(forward, a, b)

        reaction.destroy()
        reaction.destroy()
        await a.dispatch(Ping(n=1))

        assert b.state == ()

    async def test_event_emitted_outside_dispatch_runs_on_loop(self, system):
        a = system.add_decider(_recorder("A"))
        b = system.add_decider(_recorder("B"))
        reaction = system.add_process_manager(forward, a, b)

        a.events.emit(Pinged(n=5))
        await asyncio.gather(*reaction._background)

        assert b.state == (6,)


class TestCycles:
    async def test_self_cycle_is_bounded_by_depth_limit(self, sim_clock):
        system = System(Settings(cascade={"max_depth": 5}), clock=sim_clock)
        a = system.add_decider(_recorder("A"))
        system.add_process_manager(forward, a, a)

        await a.dispatch(Ping(n=0))

        # depth 0 is the caller's dispatch; cascades run at depths 1..5.
        assert a.state == (0, 1, 2, 3, 4, 5)
        [error] = system.errors()
        assert error.phase == "cascade"
        assert isinstance(error.error, CascadeDepthExceeded)
        assert error.error.depth == 6
        assert error.error.limit == 5
        system.destroy()

    async def test_two_unit_cycle_does_not_deadlock(self, sim_clock):
        system = System(Settings(cascade={"max_depth": 4}), clock=sim_clock)
        a = system.add_decider(_recorder("A"))
        b = system.add_decider(_recorder("B"))
        system.add_process_manager(forward, a, b)
        system.add_process_manager(forward, b, a)

        await asyncio.wait_for(a.dispatch(Ping(n=0)), timeout=5)

        assert a.state == (0, 2, 4)
        assert b.state == (1, 3)
        assert len(system.errors()) == 1
        system.destroy()


class TestCascadeQueue:
    def test_enqueue_outside_dispatch_returns_false(self):
        assert cascade.enqueue(cascade.PendingCommand(target=None, command=None, source="x")) is False
        assert cascade.current_depth() == 0

    def test_collecting_scopes_the_queue(self):
        pending = cascade.PendingCommand(target=None, command=Ping(n=1), source="x")
        with cascade.collecting() as queue:
            assert cascade.enqueue(pending)
        assert queue == [pending]
        assert cascade.enqueue(pending) is False
