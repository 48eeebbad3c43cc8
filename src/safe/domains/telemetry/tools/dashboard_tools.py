"""MCP tools for dashboard reads and the device diagnostic trail."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from safe.core.server.envelope import envelope_json
from safe.core.storage.models import LOG_LEVELS
from safe.core.storage.repository import PersistenceError

if TYPE_CHECKING:
    from safe.core.storage.repository import TelemetryRepository
    from safe.domains.telemetry.domain_logic.snapshot import SnapshotAssembler

logger = logging.getLogger(__name__)


def register_dashboard_tools(
    mcp: FastMCP,
    repository: TelemetryRepository,
    assembler: SnapshotAssembler,
    *,
    default_device_id: str,
) -> None:
    """Register read-only dashboard tools on the MCP server."""

    @mcp.tool
    async def get_latest_data(
        ctx: Context,
        device_id: str = "",
    ) -> str:
        """Latest state of a device: profile, GPS, current activity, today's falls and activity summary.

        Args:
            device_id: Device to query. Defaults to the configured default device.
        """
        now = repository.now()
        device_id = device_id.strip() or default_device_id
        try:
            snapshot = assembler.assemble(device_id, now=now)
        except PersistenceError:
            logger.exception("Error retrieving snapshot for %s", device_id)
            return envelope_json(False, "Error retrieving data", now=now)
        return envelope_json(True, "Data retrieved successfully", snapshot, now=now)

    @mcp.tool
    async def get_device_logs(
        ctx: Context,
        device_id: str = "",
        level: str = "",
        limit: int = 50,
    ) -> str:
        """List the persisted diagnostic trail (low battery, nearby obstacles, falls, errors).

        Args:
            device_id: Only entries for this device. Empty means all devices.
            level: Only entries at this level: 'info', 'warning', 'error', 'critical'.
            limit: Maximum number of entries to return, newest first.
        """
        now = repository.now()
        if level and level not in LOG_LEVELS:
            return envelope_json(False, f"Invalid log level: {level}", now=now)
        if limit < 1:
            return envelope_json(False, "limit must be at least 1", now=now)

        try:
            entries = repository.get_system_logs(
                device_id=device_id.strip() or None,
                level=level or None,
                limit=limit,
            )
        except PersistenceError:
            logger.exception("Error reading system logs")
            return envelope_json(False, "Error retrieving logs", now=now)

        return envelope_json(
            True,
            "Logs retrieved successfully",
            {"count": len(entries), "entries": [asdict(entry) for entry in entries]},
            now=now,
        )
