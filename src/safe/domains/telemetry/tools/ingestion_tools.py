"""MCP tools for telemetry ingestion.

Mirrors ``POST /api/receive_data`` for clients that speak MCP instead of
plain HTTP. Results use the same JSON envelope.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from safe.core.server.envelope import envelope_json
from safe.domains.telemetry.errors import TelemetryError

if TYPE_CHECKING:
    from safe.core.storage.repository import TelemetryRepository
    from safe.domains.telemetry.ingestion.dispatcher import IngestionDispatcher

logger = logging.getLogger(__name__)


def register_ingestion_tools(
    mcp: FastMCP,
    repository: TelemetryRepository,
    dispatcher: IngestionDispatcher,
) -> None:
    """Register telemetry ingestion tools on the MCP server."""

    @mcp.tool
    async def ingest_telemetry(
        ctx: Context,
        event: dict[str, Any],
    ) -> str:
        """Submit one telemetry event from a SAFE wearable.

        Args:
            event: Envelope with ``data_type`` (sensor, gps, fall_detection,
                activity, obstacle, battery), ``device_id`` and the fields for
                that type, e.g. ``{"data_type": "activity", "device_id":
                "SAFE-001", "activity_type": "walking", "confidence": 0.8}``.
        """
        now = repository.now()
        try:
            result = dispatcher.dispatch(event, now=now)
        except TelemetryError as exc:
            return envelope_json(False, str(exc), now=now)
        return envelope_json(True, result.message, result.data, now=now)
