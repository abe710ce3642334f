"""Safe file I/O utilities.

Provides whole-file replacement with ``fsync`` so a crash mid-write never
leaves a half-written state file behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str) -> None:
    """Replace *path* with *text* atomically.

    * Data is written to a temporary file in the same directory, flushed
      and ``fsync``-ed, then moved over the target with ``os.replace``.
    * Readers observe either the old content or the new, never a mix.
    * Parent directories are created as needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            logger.warning("Could not remove temp file %s", tmp_name)
        raise
