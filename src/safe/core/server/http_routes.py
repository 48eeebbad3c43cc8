"""Plain JSON-over-HTTP routes used by the wearable and the dashboard.

Mounted on the FastMCP server as custom Starlette routes, next to the MCP
endpoint.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from safe.core.server.envelope import envelope_response
from safe.core.storage.repository import PersistenceError
from safe.domains.telemetry.errors import TelemetryError

if TYPE_CHECKING:
    from safe.core.storage.repository import TelemetryRepository
    from safe.domains.telemetry.domain_logic.snapshot import SnapshotAssembler
    from safe.domains.telemetry.ingestion.dispatcher import IngestionDispatcher

logger = logging.getLogger(__name__)

RECEIVE_DATA_PATH = "/api/receive_data"
LATEST_DATA_PATH = "/api/get_latest_data"


def register_http_routes(
    mcp: FastMCP,
    repository: TelemetryRepository,
    dispatcher: IngestionDispatcher,
    assembler: SnapshotAssembler,
    *,
    default_device_id: str,
) -> None:
    """Register the ingestion and dashboard routes on the server."""

    @mcp.custom_route(RECEIVE_DATA_PATH, methods=["GET", "POST", "PUT", "DELETE"])
    async def receive_data(request: Request) -> JSONResponse:
        now = repository.now()
        if request.method != "POST":
            return envelope_response(False, "Method not allowed. Use POST.", now=now, status_code=405)

        body = await request.body()
        try:
            result = dispatcher.dispatch_raw(body, now=now)
        except TelemetryError as exc:
            logger.info("Rejected ingestion request: %s", exc)
            return envelope_response(False, str(exc), now=now, status_code=exc.status_code)

        return envelope_response(True, result.message, result.data, now=now)

    @mcp.custom_route(LATEST_DATA_PATH, methods=["GET"])
    async def get_latest_data(request: Request) -> JSONResponse:
        now = repository.now()
        device_id = request.query_params.get("device_id", "").strip() or default_device_id
        try:
            snapshot = assembler.assemble(device_id, now=now)
        except PersistenceError:
            logger.exception("Error retrieving snapshot for %s", device_id)
            return envelope_response(False, "Error retrieving data", now=now, status_code=500)

        return envelope_response(True, "Data retrieved successfully", snapshot, now=now)
