"""Persistence manager: save and restore decider state across runs.

Saving is push-driven: the manager subscribes to each decider's
``state_changes`` channel and schedules a save whenever an event replaces
the state.  Bursts of changes inside the debounce window coalesce into a
single write of the latest state.

The manager reads decider state and may restore it on load; it never
dispatches commands.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

from eventfold.core.clock import IClock, WallClock
from eventfold.core.config import PersistenceConfig
from eventfold.core.errors import PersistenceError
from eventfold.core.ids import payload_hash
from eventfold.core.messages import StateChange
from eventfold.infrastructure.state_store import StateStore
from eventfold.runtime.decider import DecisionUnit

if TYPE_CHECKING:
    from eventfold.runtime.system import System

logger = logging.getLogger(__name__)

Cleanup = Callable[[], None]


@dataclass(frozen=True)
class PersistenceOptions:
    auto_save: bool = True
    save_debounce: float = 0.0  # seconds
    save_events: bool = False
    max_events: int = 1000

    @classmethod
    def from_config(cls, cfg: PersistenceConfig) -> PersistenceOptions:
        return cls(
            auto_save=cfg.auto_save,
            save_debounce=cfg.save_debounce,
            save_events=cfg.save_events,
            max_events=cfg.max_events,
        )


def events_key(unit_name: str) -> str:
    return f"{unit_name}:events"


class PersistenceManager:
    """Keeps deciders and a ``StateStore`` in sync.

    Parameters
    ----------
    store
        Where snapshots go.
    options
        Save policy (auto-save, debounce, event log).
    clock
        Timestamp source for event log entries.
    """

    def __init__(
        self,
        store: StateStore,
        options: PersistenceOptions | None = None,
        *,
        clock: IClock | None = None,
    ) -> None:
        self._store = store
        self._options = options or PersistenceOptions()
        self._clock = clock or WallClock()
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._event_logs: dict[str, deque[dict[str, Any]]] = {}
        self._last_hash: dict[str, str] = {}

    @property
    def options(self) -> PersistenceOptions:
        return self._options

    # ------------------------------------------------------------------
    # Enabling
    # ------------------------------------------------------------------

    async def enable_for(
        self, unit: DecisionUnit, *, state_type: Any | None = None,
    ) -> Cleanup:
        """Restore *unit* from the store, then keep the store updated.

        Returns a cleanup callable that stops auto-saving and cancels any
        scheduled save.
        """
        await self.load_state(unit, state_type=state_type)

        if not self._options.auto_save:
            return lambda: None

        unsubscribers = [unit.state_changes.subscribe(
            lambda change: self._on_state_change(unit, change),
        )]
        if self._options.save_events:
            unsubscribers.append(unit.events.subscribe(
                lambda event: self._on_event(unit, event),
            ))

        def cleanup() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()
            task = self._pending.pop(unit.name, None)
            if task is not None:
                task.cancel()

        return cleanup

    async def enable_for_system(
        self,
        system: System,
        state_types: Mapping[str, Any] | None = None,
    ) -> Cleanup:
        """``enable_for`` every decider registered with *system*."""
        state_types = state_types or {}
        cleanups = [
            await self.enable_for(unit, state_type=state_types.get(name))
            for name, unit in system.deciders.items()
        ]

        def cleanup() -> None:
            for fn in cleanups:
                fn()

        return cleanup

    # ------------------------------------------------------------------
    # Manual save / load
    # ------------------------------------------------------------------

    async def save_state(self, unit: DecisionUnit) -> bool:
        """Write *unit*'s state (and event log).  Returns ``False`` when the
        snapshot is unchanged since the last write."""
        snapshot = to_jsonable_python(unit.state, serialize_unknown=True)
        digest = payload_hash({"state": snapshot})
        if self._last_hash.get(unit.name) == digest and not self._options.save_events:
            return False

        await self._store.save(unit.name, unit.state)
        self._last_hash[unit.name] = digest
        if self._options.save_events:
            await self._store.save(
                events_key(unit.name), list(self._event_logs.get(unit.name, ())),
            )
        return True

    async def load_state(self, unit: DecisionUnit, *, state_type: Any | None = None) -> bool:
        """Restore *unit* from its snapshot.  Returns ``False`` if none exists.

        Raises ``PersistenceError`` if the snapshot does not fit *state_type*.
        """
        loaded = False
        raw = await self._store.load(unit.name)
        if raw is not None:
            state = raw
            if state_type is not None:
                try:
                    state = TypeAdapter(state_type).validate_python(raw)
                except ValidationError as exc:
                    raise PersistenceError(
                        f"Stored state for {unit.name!r} does not match "
                        f"{getattr(state_type, '__name__', state_type)}: {exc}"
                    ) from exc
            unit.restore(state)
            self._last_hash[unit.name] = payload_hash(
                {"state": to_jsonable_python(unit.state, serialize_unknown=True)},
            )
            loaded = True
            logger.info("Restored %s from store", unit.name)

        if self._options.save_events:
            saved_events = await self._store.load(events_key(unit.name))
            if saved_events:
                self._event_logs[unit.name] = deque(
                    saved_events, maxlen=self._options.max_events or None,
                )
        return loaded

    async def clear_state(self, unit_name: str) -> None:
        """Forget everything stored for *unit_name*."""
        await self._store.delete(unit_name)
        if self._options.save_events:
            await self._store.delete(events_key(unit_name))
        self._event_logs.pop(unit_name, None)
        self._last_hash.pop(unit_name, None)

    def event_log(self, unit_name: str) -> tuple[dict[str, Any], ...]:
        """Recorded ``{"event", "timestamp"}`` entries, oldest first."""
        return tuple(self._event_logs.get(unit_name, ()))

    async def flush(self) -> None:
        """Wait until every scheduled or running save has finished."""
        while self._tasks:
            tasks = list(self._tasks)
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def pending_saves(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Push-driven saving
    # ------------------------------------------------------------------

    def _on_state_change(self, unit: DecisionUnit, change: StateChange[Any]) -> None:
        if change.event is None:
            # Restores come from the store; nothing new to write.
            return
        self._schedule_save(unit)

    def _on_event(self, unit: DecisionUnit, event: Any) -> None:
        log = self._event_logs.get(unit.name)
        if log is None:
            log = deque(maxlen=self._options.max_events or None)
            self._event_logs[unit.name] = log
        log.append({"event": event, "timestamp": self._clock.now()})
        self._schedule_save(unit)

    def _schedule_save(self, unit: DecisionUnit) -> None:
        if unit.name in self._pending:
            return
        task = asyncio.get_running_loop().create_task(self._save_later(unit))
        self._pending[unit.name] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _save_later(self, unit: DecisionUnit) -> None:
        try:
            if self._options.save_debounce > 0:
                await asyncio.sleep(self._options.save_debounce)
        finally:
            self._pending.pop(unit.name, None)
        try:
            await self.save_state(unit)
        except Exception:
            logger.exception("Auto-save failed for %s", unit.name)
