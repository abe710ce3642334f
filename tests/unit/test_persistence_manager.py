"""Tests for ``infrastructure/persistence.py``."""

from __future__ import annotations

import pytest

from eventfold.core.config import PersistenceConfig
from eventfold.core.errors import PersistenceError
from eventfold.examples.counter import Counter, Increment, counter_config
from eventfold.examples.todo import AddTodo, TodoState, todo_config
from eventfold.infrastructure.persistence import (
    PersistenceManager,
    PersistenceOptions,
    events_key,
)
from eventfold.infrastructure.state_store import InMemoryStateStore, JsonFileStateStore
from eventfold.runtime.system import System


class TestOptions:
    def test_from_config(self):
        opts = PersistenceOptions.from_config(
            PersistenceConfig(auto_save=False, save_debounce=0.5, save_events=True, max_events=3),
        )
        assert opts == PersistenceOptions(
            auto_save=False, save_debounce=0.5, save_events=True, max_events=3,
        )

    def test_events_key(self):
        assert events_key("Cart") == "Cart:events"


class TestAutoSave:
    async def test_saves_after_state_change(self, system, sim_clock):
        store = InMemoryStateStore()
        manager = PersistenceManager(store)
        counter = system.add_decider(counter_config(clock=sim_clock))
        await manager.enable_for(counter)

        await counter.dispatch(Increment(amount=3))
        await manager.flush()

        saved = await store.load("Counter")
        assert saved.value == 3

    async def test_debounced_changes_coalesce(self, system, sim_clock):
        store = InMemoryStateStore()
        manager = PersistenceManager(store, PersistenceOptions(save_debounce=0.05))
        counter = system.add_decider(counter_config(clock=sim_clock))
        await manager.enable_for(counter)

        for _ in range(5):
            await counter.dispatch(Increment(amount=1))
        assert manager.pending_saves == 1
        await manager.flush()

        assert store.saves == 1
        assert (await store.load("Counter")).value == 5
        assert manager.pending_saves == 0

    async def test_cleanup_stops_saving(self, system, sim_clock):
        store = InMemoryStateStore()
        manager = PersistenceManager(store, PersistenceOptions(save_debounce=0.05))
        counter = system.add_decider(counter_config(clock=sim_clock))
        stop = await manager.enable_for(counter)

        await counter.dispatch(Increment(amount=1))
        stop()
        await manager.flush()
        await counter.dispatch(Increment(amount=1))
        await manager.flush()

        assert store.saves == 0
        assert counter.state_changes.listener_count == 0

    async def test_auto_save_disabled(self, system, sim_clock):
        store = InMemoryStateStore()
        manager = PersistenceManager(store, PersistenceOptions(auto_save=False))
        counter = system.add_decider(counter_config(clock=sim_clock))
        await manager.enable_for(counter)

        await counter.dispatch(Increment(amount=1))
        await manager.flush()
        assert store.saves == 0

        assert await manager.save_state(counter) is True
        assert store.saves == 1

    async def test_unchanged_state_is_not_rewritten(self, system, sim_clock):
        store = InMemoryStateStore()
        manager = PersistenceManager(store, PersistenceOptions(auto_save=False))
        counter = system.add_decider(counter_config(clock=sim_clock))

        assert await manager.save_state(counter) is True
        assert await manager.save_state(counter) is False
        assert store.saves == 1


class TestRestore:
    async def test_json_roundtrip_restores_typed_state(self, tmp_path, sim_clock):
        store = JsonFileStateStore(tmp_path)

        first = System(clock=sim_clock)
        counter = first.add_decider(counter_config(clock=sim_clock))
        manager = PersistenceManager(store)
        await manager.enable_for(counter, state_type=Counter)
        await counter.dispatch(Increment(amount=3))
        await counter.dispatch(Increment(amount=4))
        await manager.flush()
        expected = counter.state
        first.destroy()

        second = System(clock=sim_clock)
        restored = second.add_decider(counter_config(clock=sim_clock))
        loader = PersistenceManager(store)
        await loader.enable_for(restored, state_type=Counter)

        assert restored.state == expected
        assert isinstance(restored.state, Counter)

    async def test_corrupt_snapshot_starts_fresh(self, tmp_path, system, sim_clock):
        (tmp_path / "eventfold--Counter.json").write_bytes(b"\xff\xfe{bad")
        counter = system.add_decider(counter_config(clock=sim_clock))
        manager = PersistenceManager(JsonFileStateStore(tmp_path))

        await manager.enable_for(counter, state_type=Counter)
        assert counter.state.value == 0

        await counter.dispatch(Increment(amount=2))
        await manager.flush()
        assert (await JsonFileStateStore(tmp_path).load("Counter"))["value"] == 2
        await restored.dispatch(Increment(amount=1))
        assert restored.state.value == 8
        second.destroy()

    async def test_restore_does_not_trigger_a_save(self, system, sim_clock):
        store = InMemoryStateStore()
        todos = system.add_decider(todo_config(clock=sim_clock))
        await store.save("Todo", TodoState(todos={}))
        manager = PersistenceManager(store)

        assert await manager.load_state(todos, state_type=TodoState) is True
        await manager.enable_for(todos, state_type=TodoState)
        await manager.flush()

        assert store.saves == 1

    async def test_no_snapshot_keeps_initial_state(self, system, sim_clock):
        counter = system.add_decider(counter_config(clock=sim_clock))
        initial = counter.state
        manager = PersistenceManager(InMemoryStateStore())

        assert await manager.load_state(counter) is False
        assert counter.state is initial

    async def test_mismatched_snapshot_raises(self, system, sim_clock):
        store = InMemoryStateStore()
        await store.save("Counter", {"value": "not a counter"})
        counter = system.add_decider(counter_config(clock=sim_clock))

        with pytest.raises(PersistenceError):
            await PersistenceManager(store).load_state(counter, state_type=Counter)

    async def test_enable_for_system(self, system, sim_clock):
        store = InMemoryStateStore()
        counter = system.add_decider(counter_config(clock=sim_clock))
        todos = system.add_decider(todo_config(clock=sim_clock))
        manager = PersistenceManager(store)
        stop = await manager.enable_for_system(system, {"Counter": Counter, "Todo": TodoState})

        await counter.dispatch(Increment(amount=1))
        await todos.dispatch(AddTodo(id="t1", text="Persist me"))
        await manager.flush()
        stop()

        assert sorted(await store.list()) == ["Counter", "Todo"]


class TestEventLog:
    async def test_events_are_logged_and_bounded(self, system, sim_clock):
        store = InMemoryStateStore()
        manager = PersistenceManager(
            store, PersistenceOptions(save_events=True, max_events=2), clock=sim_clock,
        )
        counter = system.add_decider(counter_config(clock=sim_clock))
        await manager.enable_for(counter)

        for amount in (1, 2, 3):
            await counter.dispatch(Increment(amount=amount))
        await manager.flush()

        log = manager.event_log("Counter")
        assert [entry["event"].amount for entry in log] == [2, 3]
        assert log[0]["timestamp"] == sim_clock.now()
        stored = await store.load(events_key("Counter"))
        assert len(stored) == 2

    async def test_clear_state_forgets_everything(self, system, sim_clock):
        store = InMemoryStateStore()
        manager = PersistenceManager(store, PersistenceOptions(save_events=True))
        counter = system.add_decider(counter_config(clock=sim_clock))
        await manager.enable_for(counter)
        await counter.dispatch(Increment(amount=1))
        await manager.flush()

        await manager.clear_state("Counter")

        assert await store.list() == []
        assert manager.event_log("Counter") == ()
