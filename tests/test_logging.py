"""
Log formatting tests.
"""
import json
import logging

from licitaflow.middleware.logging_config import JSONFormatter


def _record(**extra):
    record = logging.LogRecord("licitaflow.services.workflow_service", logging.INFO, __file__, 1,
                               "Step completed step_id=%s", (7,), None)
    record.__dict__.update(extra)
    return record


def test_json_lifts_request_context():
    entry = json.loads(JSONFormatter().format(_record(request_id="abc123", process_id=42, status=200)))
    assert entry["message"] == "Step completed step_id=7"
    assert entry["level"] == "INFO"
    assert entry["request_id"] == "abc123"
    assert entry["process_id"] == 42
    assert entry["status"] == 200


def test_json_skips_missing_context():
    entry = json.loads(JSONFormatter().format(_record(user_id=None)))
    assert "user_id" not in entry
    assert "process_id" not in entry
