"""System: composition root wiring deciders, projectors and reactions.

Usage::

    from eventfold import System

    system = System()
    counter = system.add_decider(counter_config)
    stats = system.add_projector(stats_config, counter)
    system.add_process_manager(checkout_config, cart, order)

    await counter.dispatch(Increment(amount=3))

    # Observability
    system.trace_log        # newest first, bounded
    system.get_metrics()

    system.destroy()

Each ``System`` owns its own registry; any number of independent systems
can coexist in one process.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from eventfold.core.clock import IClock, WallClock
from eventfold.core.config import Settings, load_settings
from eventfold.core.errors import DuplicateUnitError, UnknownUnitError, WiringError
from eventfold.core.messages import Envelope
from eventfold.observability.trace import (
    ConsoleTraceSink,
    ErrorRecorded,
    TraceEntry,
    TraceLog,
)
from eventfold.runtime.channel import EventChannel, Unsubscribe
from eventfold.runtime.decider import DeciderConfig, DecisionUnit
from eventfold.runtime.projector import Projector, ProjectorConfig
from eventfold.runtime.reaction import ReactionConfig, ReactionUnit

logger = logging.getLogger(__name__)


class System:
    """Owns the decider registry, the global channel and the trace log.

    Parameters
    ----------
    settings:
        Runtime settings.  Defaults to ``Settings()`` (env-overridable).
    clock:
        Timestamp source for trace entries.
    console_trace:
        Mirror trace entries to the log.  ``None`` defers to
        ``settings.trace.console``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        clock: IClock | None = None,
        console_trace: bool | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._clock = clock or WallClock()
        self._deciders: dict[str, DecisionUnit] = {}
        self._projectors: list[Projector] = []
        self._reactions: list[ReactionUnit] = []
        self._cleanups: list[Unsubscribe] = []
        self._destroyed = False

        self.trace: EventChannel[TraceEntry] = EventChannel(name="trace")
        self.all_events: EventChannel[Envelope] = EventChannel(name="all_events")

        self._trace_log = TraceLog(capacity=self._settings.trace.capacity)
        self._cleanups.append(self.trace.subscribe(self._trace_log.record))

        if console_trace is None:
            console_trace = self._settings.trace.console
        if console_trace:
            self._cleanups.append(self.trace.subscribe(ConsoleTraceSink()))

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        *,
        overrides: dict[str, Any] | None = None,
        clock: IClock | None = None,
    ) -> System:
        """Build a system from a TOML file plus overrides."""
        return cls(load_settings(config_path, overrides), clock=clock)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def add_decider(self, config: DeciderConfig) -> DecisionUnit:
        """Register a decider and forward its events to ``all_events``.

        Raises ``DuplicateUnitError`` if the name is already taken.
        """
        self._ensure_alive()
        if config.name in self._deciders:
            raise DuplicateUnitError(config.name)

        unit = DecisionUnit(
            config,
            trace=self.trace,
            clock=self._clock,
            max_cascade_depth=self._settings.cascade.max_depth,
        )
        self._deciders[config.name] = unit

        name = config.name
        self._cleanups.append(
            unit.events.subscribe(
                lambda event: self.all_events.emit(Envelope(source_unit=name, event=event))
            )
        )
        logger.debug("Registered decider %s", name)
        return unit

    def add_projector(self, config: ProjectorConfig, source: DecisionUnit) -> Projector:
        """Fold *source*'s events into a read model."""
        self._ensure_alive()
        self._ensure_registered(source)
        projector = Projector(config, source.events, trace=self.trace, clock=self._clock)
        self._projectors.append(projector)
        self._cleanups.append(projector.destroy)
        return projector

    def add_global_projector(self, config: ProjectorConfig) -> Projector:
        """Fold every decider's events, as ``Envelope`` items, into a read model."""
        self._ensure_alive()
        projector = Projector(config, self.all_events, trace=self.trace, clock=self._clock)
        self._projectors.append(projector)
        self._cleanups.append(projector.destroy)
        return projector

    def add_process_manager(
        self,
        config: ReactionConfig,
        source: DecisionUnit,
        target: DecisionUnit,
    ) -> ReactionUnit:
        """React to *source*'s events by dispatching commands to *target*."""
        self._ensure_alive()
        self._ensure_registered(source)
        self._ensure_registered(target)
        reaction = ReactionUnit(
            config, source, target, trace=self.trace, clock=self._clock,
        )
        self._reactions.append(reaction)
        self._cleanups.append(reaction.destroy)
        return reaction

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def deciders(self) -> Mapping[str, DecisionUnit]:
        """Registered deciders by name (read-only view)."""
        return MappingProxyType(self._deciders)

    def get_decider(self, name: str) -> DecisionUnit:
        try:
            return self._deciders[name]
        except KeyError:
            raise UnknownUnitError(f"No decider named {name!r}") from None

    @property
    def projectors(self) -> tuple[Projector, ...]:
        return tuple(self._projectors)

    @property
    def reactions(self) -> tuple[ReactionUnit, ...]:
        return tuple(self._reactions)

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def trace_log(self) -> tuple[TraceEntry, ...]:
        """Most recent trace entries, newest first."""
        return self._trace_log.entries()

    def trace_entries(self, kind: str | None = None) -> tuple[TraceEntry, ...]:
        return self._trace_log.entries(kind)

    def errors(self) -> tuple[ErrorRecorded, ...]:
        """Error entries still held in the trace log, newest first."""
        return self._trace_log.errors()

    def clear_trace(self) -> None:
        self._trace_log.clear()

    def get_metrics(self) -> dict[str, Any]:
        """Topology and trace counters."""
        return {
            "deciders": len(self._deciders),
            "projectors": len(self._projectors),
            "reactions": len(self._reactions),
            "trace_entries": len(self._trace_log),
            "trace_capacity": self._trace_log.capacity,
            "errors": len(self._trace_log.errors()),
            "versions": {name: u.version for name, u in self._deciders.items()},
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def destroy(self) -> None:
        """Release every subscription made through this system.  Idempotent."""
        if self._destroyed:
            return
        self._destroyed = True
        cleanups, self._cleanups = self._cleanups, []
        for cleanup in cleanups:
            cleanup()
        logger.debug("System destroyed (%d subscriptions released)", len(cleanups))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise WiringError("System has been destroyed")

    def _ensure_registered(self, unit: DecisionUnit) -> None:
        if self._deciders.get(unit.name) is not unit:
            raise UnknownUnitError(
                f"Decider {unit.name!r} is not registered with this system"
            )
