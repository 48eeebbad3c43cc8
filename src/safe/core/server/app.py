"""SAFE telemetry server application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from safe.core.config.settings import get_settings
from safe.core.server.http_routes import register_http_routes
from safe.core.storage.database import TelemetryDatabase
from safe.core.storage.encryption import FieldEncryptor
from safe.core.storage.repository import PersistenceError, TelemetryRepository
from safe.domains.telemetry.domain_logic.snapshot import SnapshotAssembler
from safe.domains.telemetry.ingestion.dispatcher import IngestionDispatcher
from safe.domains.telemetry.tools.dashboard_tools import register_dashboard_tools
from safe.domains.telemetry.tools.device_tools import register_device_tools
from safe.domains.telemetry.tools.ingestion_tools import register_ingestion_tools

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    *,
    repository_override: TelemetryRepository | None = None,
) -> FastMCP:
    """Create and configure the SAFE telemetry server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Opens the telemetry store (SQLite, optional field encryption)
    3. Wires the ingestion dispatcher and snapshot assembler
    4. Registers MCP tools and the plain HTTP routes
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        "SAFE Fall Detection",
        instructions=(
            "Telemetry backend for the SAFE wearable fall-detection device. "
            "Ingests sensor, GPS, activity, obstacle, battery and fall events, "
            "and serves the latest-state snapshot used by the caregiver dashboard."
        ),
    )

    # --- Initialize storage ---
    if repository_override is not None:
        repository = repository_override
    else:
        encryptor: FieldEncryptor | None = None
        if settings.encryption_key:
            encryptor = FieldEncryptor(settings.encryption_key)
        else:
            logger.warning(
                "No ENCRYPTION_KEY configured; emergency contacts and medical "
                "conditions will be stored unencrypted."
            )
        telemetry_db = TelemetryDatabase(settings.db_path)
        telemetry_db.initialize()
        repository = TelemetryRepository(
            telemetry_db,
            encryptor,
            timezone=settings.safe_timezone,
        )
        logger.info(
            "Telemetry store initialized: %s (schema v%d)",
            settings.db_path,
            telemetry_db.get_schema_version(),
        )

    # --- Domain services ---
    dispatcher = IngestionDispatcher(
        repository,
        low_battery_threshold=settings.low_battery_threshold,
        near_obstacle_distance_m=settings.near_obstacle_distance_m,
    )
    assembler = SnapshotAssembler(repository)

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": "SAFE Fall Detection",
            "version": VERSION,
            "timezone": str(repository.timezone),
        }
        try:
            status["records"] = repository.count_records()
        except PersistenceError as exc:
            status["status"] = "degraded"
            status["storage_error"] = str(exc)
        return status

    register_ingestion_tools(server, repository, dispatcher)
    register_dashboard_tools(
        server, repository, assembler, default_device_id=settings.safe_default_device_id
    )
    register_device_tools(server, repository)
    logger.info("Telemetry tools registered")

    # --- Register HTTP routes ---
    register_http_routes(
        server,
        repository,
        dispatcher,
        assembler,
        default_device_id=settings.safe_default_device_id,
    )

    return server


# Module-level instance for FastMCP discovery ("...app.py:mcp").
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
