"""JSONL audit log for ddtool.

Every record under the ``ddtool`` logger tree becomes one JSON line in
``.ddtool/ddtool.log`` (5MB per file, 3 rotated backups). Walk-specific
context travels in ``extra=``: the pack and node, the trace kind and
sequence number, the session id, and timings or error codes.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FILENAME = "ddtool.log"
_ROOT_LOGGER = "ddtool"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

# Attributes copied from ``extra=`` into the JSON line, in output order
CONTEXT_FIELDS = ("session", "pack", "node", "kind", "seq", "duration_ms", "error")

_lock = threading.Lock()


def _record_to_entry(record: logging.LogRecord) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds"),
        "level": record.levelname,
        "logger": record.name,
        "msg": record.getMessage(),
    }
    entry.update({name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)})
    if record.exc_info and record.exc_info[1] is not None:
        exc = record.exc_info[1]
        entry["exception"] = str(exc)
        entry["exc_type"] = type(exc).__name__
    return entry


class _JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(_record_to_entry(record), default=str)


def _file_handlers(logger: logging.Logger) -> list[RotatingFileHandler]:
    return [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]


def setup_logging(ddtool_dir: Path, level: int | str = logging.INFO) -> logging.Logger:
    """Point the ``ddtool`` logger at ``<ddtool_dir>/ddtool.log``.

    Safe to call repeatedly: the same directory keeps its handler, a new one
    swaps the old handler out. *level* may be a number or a name (``"DEBUG"``).
    """
    logger = logging.getLogger(_ROOT_LOGGER)
    log_path = Path(ddtool_dir) / LOG_FILENAME
    target = os.path.abspath(log_path)

    with _lock:
        current = _file_handlers(logger)
        if any(h.baseFilename == target for h in current):
            return logger
        for stale in current:
            logger.removeHandler(stale)
            stale.close()

        handler = RotatingFileHandler(log_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8")
        handler.setFormatter(_JsonLineFormatter())
        logger.addHandler(handler)
        logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger
