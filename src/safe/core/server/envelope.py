"""Standard response envelope shared by the HTTP routes and MCP tools."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from starlette.responses import JSONResponse

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def make_envelope(success: bool, message: str, data: Any = None, *, now: datetime) -> dict[str, Any]:
    """Build ``{success, message, timestamp, data}`` with server-local time."""
    return {
        "success": success,
        "message": message,
        "timestamp": now.strftime(TIMESTAMP_FORMAT),
        "data": data,
    }


def envelope_json(success: bool, message: str, data: Any = None, *, now: datetime) -> str:
    """Envelope serialised for MCP tool results."""
    return json.dumps(make_envelope(success, message, data, now=now), ensure_ascii=False)


def envelope_response(
    success: bool,
    message: str,
    data: Any = None,
    *,
    now: datetime,
    status_code: int = 200,
) -> JSONResponse:
    return JSONResponse(make_envelope(success, message, data, now=now), status_code=status_code)
