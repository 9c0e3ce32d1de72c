# backend/tests/test_logging.py
from __future__ import annotations

import json
import logging
import sys

from app.logging_config import JsonFormatter
from app.middleware.request_id import request_id_ctx


def _record(**extra):
    r = logging.LogRecord("landreg.transfers", logging.INFO, __file__, 1, "transfer %s moved", (7,), None)
    for k, v in extra.items():
        setattr(r, k, v)
    return r


def test_json_line_carries_workflow_extras():
    out = json.loads(JsonFormatter().format(_record(transfer_id=7, property_id=3, action="transfer_approved")))
    assert out["message"] == "transfer 7 moved"
    assert out["logger"] == "landreg.transfers"
    assert out["level"] == "INFO"
    assert out["transfer_id"] == 7 and out["property_id"] == 3
    assert out["action"] == "transfer_approved"
    assert "request_id" not in out
    assert "dispute_id" not in out


def test_json_line_picks_up_request_id():
    token = request_id_ctx.set("rid-1")
    try:
        out = json.loads(JsonFormatter().format(_record()))
    finally:
        request_id_ctx.reset(token)
    assert out["request_id"] == "rid-1"


def test_exception_is_serialized():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        r = logging.LogRecord("landreg.workflow", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    out = json.loads(JsonFormatter().format(r))
    assert "RuntimeError: boom" in out["exc_info"]
