"""Identifier and fingerprint helpers."""

from __future__ import annotations

import hashlib
import json
import uuid
from typing import Any


def new_id() -> str:
    """Random UUID v4 string for entity ids created inside ``initial_state``."""
    return str(uuid.uuid4())


def payload_hash(payload: dict[str, Any], *, length: int = 16) -> str:
    """Deterministic SHA-256 prefix of a JSON-serializable mapping.

    Keys are sorted and non-JSON values fall back to ``str``, so two
    equal snapshots always hash the same.  ``PersistenceManager`` uses it
    to skip rewriting unchanged state.
    """
    raw = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode()).hexdigest()[:length]
