"""Tests for clock, ids, errors and atomic file writes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from eventfold.core.clock import SimClock, WallClock
from eventfold.core.errors import (
    CascadeDepthExceeded,
    ContextResolutionError,
    DispatchError,
    DuplicateUnitError,
    EventfoldError,
    WiringError,
)
from eventfold.core.file_io import atomic_write_text
from eventfold.core.ids import new_id, payload_hash


class TestClocks:
    def test_wall_clock_is_utc(self):
        assert WallClock().now().tzinfo is timezone.utc

    def test_sim_clock_advances_only_when_told(self, sim_clock):
        start = sim_clock.now()
        assert sim_clock.now() == start
        sim_clock.advance_ms(1500)
        assert sim_clock.now() == start + timedelta(milliseconds=1500)
        assert sim_clock.now_ms() == int(start.timestamp() * 1000) + 1500

    def test_sim_clock_cannot_go_backwards(self, sim_clock):
        with pytest.raises(ValueError):
            sim_clock.set_time(sim_clock.now() - timedelta(seconds=1))

    def test_default_start(self):
        assert SimClock().now() == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_stepping_clock_ticks_on_each_reading(self):
        clock = SimClock(step=timedelta(seconds=1))
        first, second = clock.now(), clock.now()
        assert second - first == timedelta(seconds=1)

    def test_advance_returns_new_time(self, sim_clock):
        start = sim_clock.now()
        assert sim_clock.advance(timedelta(minutes=5)) == start + timedelta(minutes=5)

    def test_rejects_naive_start_and_non_positive_step(self):
        with pytest.raises(ValueError):
            SimClock(start=datetime(2024, 1, 1))
        with pytest.raises(ValueError):
            SimClock(step=timedelta(0))


class TestIds:
    def test_new_id_unique(self):
        assert len({new_id() for _ in range(100)}) == 100

    def test_payload_hash_is_order_independent(self):
        assert payload_hash({"a": 1, "b": 2}) == payload_hash({"b": 2, "a": 1})
        assert payload_hash({"a": 1}) != payload_hash({"a": 2})
        assert len(payload_hash({"a": 1}, length=8)) == 8


class TestErrors:
    def test_hierarchy(self):
        assert issubclass(DuplicateUnitError, WiringError)
        assert issubclass(ContextResolutionError, DispatchError)
        assert issubclass(CascadeDepthExceeded, EventfoldError)

    def test_dispatch_error_message_names_unit_and_phase(self):
        err = ContextResolutionError("Cart", "AddToCart", TimeoutError("slow"))
        assert err.phase == "context"
        assert "[Cart] context failed for AddToCart" in str(err)
        assert isinstance(err.cause, TimeoutError)

    def test_duplicate_unit_message(self):
        assert str(DuplicateUnitError("Counter")) == "Decider with name 'Counter' already exists"


class TestAtomicWrite:
    def test_writes_and_replaces(self, tmp_path: Path):
        target = tmp_path / "nested" / "state.json"
        atomic_write_text(target, "one")
        atomic_write_text(target, "two")
        assert target.read_text() == "two"
        assert [p.name for p in target.parent.iterdir()] == ["state.json"]
