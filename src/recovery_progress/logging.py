"""Structured logging for the recovery progress engine.

RECOVERY_LOG_FORMAT selects "json" (default) or "text". Both formats carry the
``recovery_*`` extras (user id, timezone, rollover count) attached by callers.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone

EXTRA_PREFIX = "recovery_"

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _context_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key.startswith(EXTRA_PREFIX)
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, extras flattened into the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
        entry.update(_context_fields(record))
        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Plaintext lines with the recovery extras appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_fields(record)
        if not context:
            return line
        pairs = " ".join(f"{key[len(EXTRA_PREFIX):]}={value}" for key, value in sorted(context.items()))
        first, newline, rest = line.partition("\n")
        return f"{first} [{pairs}]{newline}{rest}"


def setup_logging(log_format: str, level: int = logging.INFO) -> None:
    """Install a single stderr handler on the root logger.

    Any format other than "json" falls back to text. psycopg is held at
    WARNING or above so query-level chatter stays out of debug runs.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if log_format == "json" else ContextTextFormatter())
    root.addHandler(handler)

    logging.getLogger("psycopg").setLevel(max(level, logging.WARNING))
