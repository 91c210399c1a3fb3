"""Tests for the error handlers' response bodies."""
import json
from datetime import datetime

import pytest
from starlette.requests import Request

from app.exceptions import ApiError, api_error_handler, global_exception_handler


def _request(path="/api/articles"):
    return Request({"type": "http", "method": "POST", "path": path, "headers": [], "query_string": b""})


@pytest.mark.asyncio
async def test_global_handler_reports_aware_timestamp():
    resp = await global_exception_handler(_request(), RuntimeError("boom"))
    assert resp.status_code == 500
    body = json.loads(resp.body)
    assert body["detail"] == "Internal server error"
    assert body["error"] == "boom"
    assert body["path"] == "/api/articles"
    assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None


@pytest.mark.asyncio
async def test_api_error_handler_renders_code_details_and_extra():
    exc = ApiError(
        503,
        "AI analysis service is temporarily unavailable",
        code="AI_ERROR",
        details=["quota"],
        extra={"success": False},
    )
    resp = await api_error_handler(_request(), exc)
    assert resp.status_code == 503
    assert json.loads(resp.body) == {
        "detail": "AI analysis service is temporarily unavailable",
        "code": "AI_ERROR",
        "details": ["quota"],
        "success": False,
    }
