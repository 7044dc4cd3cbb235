"""Unit tests for structured logging and run correlation."""

import json
import logging
import sys

from campustrack.observability.logging_config import JSONFormatter, RunIDFilter
from campustrack.observability.run_context import get_run_id, job_run


def _record(msg="Purged item", exc_info=None, **extra):
    record = logging.LogRecord(
        name="campustrack.retention.service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_run_id_bound_only_inside_job_run():
    assert get_run_id() == "no-run-id"

    with job_run("run-123") as run_id:
        assert run_id == "run-123"
        assert get_run_id() == "run-123"

    assert get_run_id() == "no-run-id"


def test_json_formatter_includes_run_id_and_extras():
    record = _record(job="delete_scheduled_items", processed=3, item_id="abc")

    with job_run("run-42"):
        RunIDFilter().filter(record)

    payload = json.loads(JSONFormatter().format(record))

    assert payload["run_id"] == "run-42"
    assert payload["level"] == "INFO"
    assert payload["message"] == "Purged item"
    assert payload["job"] == "delete_scheduled_items"
    assert payload["processed"] == 3
    assert payload["item_id"] == "abc"
    assert "user_id" not in payload


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("mail relay down")
    except RuntimeError:
        record = _record(msg="Job failed", exc_info=sys.exc_info())

    payload = json.loads(JSONFormatter().format(record))

    assert payload["error"] == "mail relay down"
    assert "RuntimeError" in payload["traceback"]
