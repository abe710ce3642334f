"""Key/value state stores used to persist decider state between runs.

Design invariants
-----------------
1.  A store only ever holds opaque snapshots keyed by name.  It has no
    reference to any decider and can never trigger a dispatch.
2.  ``load()`` returns ``None`` for unknown keys and for unreadable
    snapshots (logged), so a corrupt file degrades to "start fresh".
3.  ``save()`` replaces the whole snapshot; there are no partial writes.

This module provides:

*  ``StateStore``: the protocol.
*  ``InMemoryStateStore``: dict-backed implementation for tests.
*  ``JsonFileStateStore``: one JSON file per key for local persistence.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote, unquote

from pydantic_core import PydanticSerializationError, to_json

from eventfold.core.errors import PersistenceError
from eventfold.core.file_io import atomic_write_text

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class StateStore(Protocol):
    """Async key/value snapshot storage."""

    async def save(self, key: str, state: Any) -> None:
        """Persist *state* under *key*, replacing any previous snapshot."""
        ...

    async def load(self, key: str) -> Any | None:
        """Return the snapshot under *key*, or ``None``."""
        ...

    async def delete(self, key: str) -> None:
        """Remove *key*.  No-op if absent."""
        ...

    async def list(self) -> list[str]:
        """Return every stored key."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryStateStore:
    """Dict-backed store.  No persistence across restarts.

    Snapshots are deep-copied on the way in and out so callers can never
    alias a stored value.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self.saves = 0

    async def save(self, key: str, state: Any) -> None:
        self._data[key] = copy.deepcopy(state)
        self.saves += 1

    async def load(self, key: str) -> Any | None:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)


# ---------------------------------------------------------------------------
# JSON file implementation
# ---------------------------------------------------------------------------

class JsonFileStateStore:
    """One ``<prefix>--<key>.json`` file per key under *directory*.

    Snapshots are encoded with ``pydantic_core.to_json`` (dataclasses,
    tuples, datetimes and decimals included) and come back as plain JSON
    values; callers rebuild typed state with a ``TypeAdapter``.
    """

    _SEPARATOR = "--"

    def __init__(self, directory: str | Path, prefix: str = "eventfold") -> None:
        self._dir = Path(directory)
        self._prefix = prefix

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / f"{self._prefix}{self._SEPARATOR}{quote(key, safe='')}.json"

    async def save(self, key: str, state: Any) -> None:
        try:
            text = to_json(state).decode("utf-8")
        except PydanticSerializationError as exc:
            raise PersistenceError(f"Cannot serialize state for {key!r}: {exc}") from exc
        try:
            atomic_write_text(self._path(key), text)
        except OSError as exc:
            raise PersistenceError(f"Failed to save state for {key!r}: {exc}") from exc

    async def load(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError):  # ValueError covers bad JSON and bad UTF-8
            logger.exception("Failed to load state for %s", key)
            return None

    async def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to delete state for {key!r}: {exc}") from exc

    async def list(self) -> list[str]:
        if not self._dir.exists():
            return []
        head = f"{self._prefix}{self._SEPARATOR}"
        keys: list[str] = []
        for path in sorted(self._dir.glob(f"{head}*.json")):
            keys.append(unquote(path.name[len(head):-len(".json")]))
        return keys
