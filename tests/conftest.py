"""Shared fixtures for the eventfold test suite."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest
import structlog

from eventfold.core.clock import SimClock
from eventfold.core.config import Settings
from eventfold.examples.counter import build_counter
from eventfold.examples.shop import build_shop
from eventfold.runtime.system import System


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo any setup_logging() call a test makes (demos configure logging)."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    """Deterministic clock starting at 2024-01-01 00:00 UTC."""
    return SimClock(start=datetime(2024, 1, 1, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Systems
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def system(settings: Settings, sim_clock: SimClock):
    sys_ = System(settings, clock=sim_clock)
    yield sys_
    sys_.destroy()


@pytest.fixture
def counter_app(system: System, sim_clock: SimClock):
    return build_counter(system, clock=sim_clock)


@pytest.fixture
def shop_app(system: System, sim_clock: SimClock):
    return build_shop(system, clock=sim_clock)
