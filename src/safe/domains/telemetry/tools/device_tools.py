"""MCP tools for registering the person wearing a SAFE device."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from safe.core.server.envelope import envelope_json
from safe.core.storage.models import Device
from safe.core.storage.repository import PersistenceError

if TYPE_CHECKING:
    from safe.core.storage.repository import TelemetryRepository

logger = logging.getLogger(__name__)


def register_device_tools(mcp: FastMCP, repository: TelemetryRepository) -> None:
    """Register device profile tools on the MCP server."""

    @mcp.tool
    async def register_device(
        ctx: Context,
        device_id: str,
        name: str,
        age: int | None = None,
        emergency_contact: str = "",
        medical_condition: str = "",
        battery_level: int = 100,
        is_active: bool = True,
    ) -> str:
        """Create or update the profile attached to a wearable.

        The emergency contact receives fall notifications. Contact and
        medical condition are encrypted at rest when a key is configured.

        Args:
            device_id: Identifier printed on the device (e.g., 'SAFE-001').
            name: Name of the person wearing the device.
            age: Age in years.
            emergency_contact: Phone number or handle of the caregiver.
            medical_condition: Free-text medical notes.
            battery_level: Initial battery percentage (0-100).
            is_active: Whether the device is currently in service.
        """
        now = repository.now()
        device_id = device_id.strip()
        if not device_id:
            return envelope_json(False, "device_id must be a non-empty string", now=now)
        if not 0 <= battery_level <= 100:
            return envelope_json(False, "battery_level must be between 0 and 100", now=now)

        device = Device(
            device_id=device_id,
            name=name,
            age=age,
            emergency_contact=emergency_contact or None,
            medical_condition=medical_condition or None,
            battery_level=battery_level,
            is_active=is_active,
        )
        try:
            repository.upsert_device(device, now)
        except PersistenceError:
            logger.exception("Failed to register device %s", device_id)
            return envelope_json(False, "Error registering device", now=now)

        return envelope_json(True, "Device registered", {"device_id": device_id}, now=now)
