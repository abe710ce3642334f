"""Structured logging with cascade correlation.

structlog renders every record (stdlib ``logging`` records included) as
JSON or console lines.  Each top-level ``dispatch`` runs inside a
``cascade_scope``: every record emitted while that command and its
reaction-produced followups run carries the same ``cascade_id`` field.
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Any

import structlog

_cascade_id: ContextVar[str | None] = ContextVar("cascade_id", default=None)


@contextmanager
def cascade_scope() -> Iterator[str]:
    """Tag records with a fresh cascade id until the block exits."""
    cid = uuid.uuid4().hex[:12]
    token = _cascade_id.set(cid)
    try:
        yield cid
    finally:
        _cascade_id.reset(token)


def current_cascade_id() -> str | None:
    """Cascade id of the command being processed, if any."""
    return _cascade_id.get()


def _add_cascade_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: tag entries emitted inside a cascade."""
    cid = _cascade_id.get()
    if cid is not None:
        event_dict.setdefault("cascade_id", cid)
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "console",
    *,
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for machine consumption, "console" for development.
        stream: Destination, stderr by default so stdout stays free for
            command output.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_cascade_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module."""
    return structlog.get_logger(name)
