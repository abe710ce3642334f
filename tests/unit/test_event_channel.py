"""Tests for ``runtime/channel.py``.

Covers:
- Registration-order delivery and idempotent unsubscribe.
- Snapshot semantics for listeners added/removed during delivery.
- FIFO queuing of reentrant emits.
- Exception propagation and reset to idle.
- Filtered (derived) channels.
"""

from __future__ import annotations

import pytest

from eventfold.runtime.channel import EventChannel


class TestDelivery:
    def test_delivers_to_every_listener_in_registration_order(self):
        channel: EventChannel[int] = EventChannel(name="numbers")
        seen: list[tuple[str, int]] = []
        channel.subscribe(lambda v: seen.append(("a", v)))
        channel.subscribe(lambda v: seen.append(("b", v)))

        channel.emit(1)

        assert seen == [("a", 1), ("b", 1)]

    def test_emit_without_listeners_is_noop(self):
        channel: EventChannel[int] = EventChannel()
        channel.emit(1)
        assert channel.listener_count == 0
        assert not channel.is_emitting

    def test_unsubscribe_is_idempotent(self):
        channel: EventChannel[int] = EventChannel()
        seen: list[int] = []
        unsubscribe = channel.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        channel.emit(1)

        assert seen == []
        assert channel.listener_count == 0

    def test_same_callable_subscribed_twice_gets_two_deliveries(self):
        channel: EventChannel[int] = EventChannel()
        seen: list[int] = []
        first = channel.subscribe(seen.append)
        channel.subscribe(seen.append)

        channel.emit(7)
        first()
        channel.emit(8)

        assert seen == [7, 7, 8]

    def test_clear_drops_all_listeners(self):
        channel: EventChannel[int] = EventChannel()
        channel.subscribe(lambda v: None)
        channel.subscribe(lambda v: None)
        channel.clear()
        assert channel.listener_count == 0


class TestSnapshotSemantics:
    def test_listener_added_during_delivery_sees_only_later_values(self):
        channel: EventChannel[int] = EventChannel()
        late: list[int] = []
        added = False

        def adder(value: int) -> None:
            nonlocal added
            if not added:
                added = True
                channel.subscribe(late.append)

        channel.subscribe(adder)
        channel.emit(1)
        channel.emit(2)

        assert late == [2]

    def test_listener_removed_during_delivery_is_skipped(self):
        channel: EventChannel[int] = EventChannel()
        seen: list[int] = []
        unsubscribers = {}

        channel.subscribe(lambda v: unsubscribers["second"]())
        unsubscribers["second"] = channel.subscribe(seen.append)

        channel.emit(1)

        assert seen == []

    def test_reentrant_emit_is_queued_fifo(self):
        channel: EventChannel[int] = EventChannel()
        seen: list[tuple[str, int]] = []

        def first(value: int) -> None:
            seen.append(("first", value))
            if value == 1:
                channel.emit(2)
                channel.emit(3)

        channel.subscribe(first)
        channel.subscribe(lambda v: seen.append(("second", v)))

        channel.emit(1)

        assert seen == [
            ("first", 1), ("second", 1),
            ("first", 2), ("second", 2),
            ("first", 3), ("second", 3),
        ]
        assert not channel.is_emitting


class TestErrors:
    def test_listener_exception_propagates_to_emitter(self):
        channel: EventChannel[int] = EventChannel()

        def boom(value: int) -> None:
            raise RuntimeError("listener failed")

        channel.subscribe(boom)
        with pytest.raises(RuntimeError, match="listener failed"):
            channel.emit(1)

    def test_channel_is_idle_and_usable_after_error(self):
        channel: EventChannel[int] = EventChannel()
        seen: list[int] = []
        failing = {"on": True}

        def maybe_fail(value: int) -> None:
            if failing["on"]:
                raise ValueError("nope")
            seen.append(value)

        channel.subscribe(maybe_fail)
        with pytest.raises(ValueError):
            channel.emit(1)
        assert not channel.is_emitting

        failing["on"] = False
        channel.emit(2)
        assert seen == [2]

    def test_values_queued_before_the_error_are_dropped(self):
        channel: EventChannel[int] = EventChannel()
        seen: list[int] = []

        def listener(value: int) -> None:
            seen.append(value)
            if value == 1:
                channel.emit(2)
                raise RuntimeError("after queueing")

        channel.subscribe(listener)
        with pytest.raises(RuntimeError):
            channel.emit(1)
        channel.emit(3)

        assert seen == [1, 3]


class TestFilter:
    def test_filtered_channel_forwards_matching_values(self):
        channel: EventChannel[int] = EventChannel(name="numbers")
        evens = channel.filter(lambda v: v % 2 == 0)
        seen: list[int] = []
        evens.subscribe(seen.append)

        for value in range(5):
            channel.emit(value)

        assert seen == [0, 2, 4]
        assert evens.name == "numbers[filtered]"

    def test_detach_stops_forwarding(self):
        channel: EventChannel[int] = EventChannel()
        derived = channel.filter(lambda v: True)
        seen: list[int] = []
        derived.subscribe(seen.append)

        channel.emit(1)
        derived.detach()
        derived.detach()
        channel.emit(2)

        assert seen == [1]
        assert channel.listener_count == 0
