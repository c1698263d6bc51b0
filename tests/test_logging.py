from __future__ import annotations

import json
import logging
import sys

import pytest

from recovery_progress.logging import ContextTextFormatter, JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="recovery_progress.scheduler",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Local midnight rollover for %s",
        args=("UTC",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_emits_single_line_json():
    line = JSONFormatter().format(_record())
    payload = json.loads(line)
    assert "\n" not in line
    assert payload["level"] == "INFO"
    assert payload["logger"] == "recovery_progress.scheduler"
    assert payload["message"] == "Local midnight rollover for UTC"


def test_json_formatter_copies_prefixed_extras_only():
    payload = json.loads(
        JSONFormatter().format(_record(recovery_timezone="UTC", recovery_rollovers=3, other="x"))
    )
    assert payload["recovery_timezone"] == "UTC"
    assert payload["recovery_rollovers"] == 3
    assert "other" not in payload


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()
    payload = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: boom" in payload["exception"]


@pytest.fixture
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.parametrize(
    "log_format,formatter_type",
    [("json", JSONFormatter), ("text", ContextTextFormatter), ("yaml", ContextTextFormatter)],
)
def test_setup_logging_installs_single_handler(_restore_root_logger, log_format, formatter_type):
    setup_logging(log_format, level=logging.DEBUG)
    root = _restore_root_logger
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, formatter_type)
    assert root.level == logging.DEBUG


def test_text_formatter_appends_context():
    line = ContextTextFormatter().format(_record(recovery_user_id="u1", recovery_timezone="UTC"))
    assert line.endswith("Local midnight rollover for UTC [timezone=UTC user_id=u1]")


def test_text_formatter_without_context():
    line = ContextTextFormatter().format(_record())
    assert line.endswith("recovery_progress.scheduler: Local midnight rollover for UTC")
