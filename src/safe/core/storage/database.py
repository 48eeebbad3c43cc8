"""SQLite database management for the SAFE telemetry store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per registered wearable (elderly person profile + device status)
CREATE TABLE IF NOT EXISTS devices (
    device_id          TEXT PRIMARY KEY,
    name               TEXT NOT NULL DEFAULT '',
    age                INTEGER,
    emergency_contact  TEXT,
    medical_condition  TEXT,
    battery_level      INTEGER NOT NULL DEFAULT 100,
    is_active          INTEGER NOT NULL DEFAULT 1,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL
);

-- Raw IMU samples
CREATE TABLE IF NOT EXISTS sensor_data (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id  TEXT NOT NULL,
    sensor_id  INTEGER NOT NULL DEFAULT 1,
    acc_x      REAL NOT NULL DEFAULT 0,
    acc_y      REAL NOT NULL DEFAULT 0,
    acc_z      REAL NOT NULL DEFAULT 0,
    gyro_x     REAL NOT NULL DEFAULT 0,
    gyro_y     REAL NOT NULL DEFAULT 0,
    gyro_z     REAL NOT NULL DEFAULT 0,
    timestamp  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS gps_tracking (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id  TEXT NOT NULL,
    latitude   REAL NOT NULL,
    longitude  REAL NOT NULL,
    accuracy   REAL,
    timestamp  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS fall_events (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id    TEXT NOT NULL,
    latitude     REAL,
    longitude    REAL,
    confidence   REAL NOT NULL,
    severity     TEXT NOT NULL,
    status       TEXT NOT NULL DEFAULT 'detected',
    detected_at  TEXT NOT NULL
);

-- Activity intervals: end_time NULL means the interval is still open
CREATE TABLE IF NOT EXISTS daily_activities (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id         TEXT NOT NULL,
    activity_type     TEXT NOT NULL,
    confidence        REAL NOT NULL DEFAULT 0,
    start_time        TEXT NOT NULL,
    end_time          TEXT,
    duration_seconds  INTEGER
);

CREATE TABLE IF NOT EXISTS obstacle_detections (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id          TEXT NOT NULL,
    object_class       TEXT NOT NULL,
    confidence         REAL NOT NULL DEFAULT 0,
    bbox_x1            INTEGER NOT NULL DEFAULT 0,
    bbox_y1            INTEGER NOT NULL DEFAULT 0,
    bbox_x2            INTEGER NOT NULL DEFAULT 0,
    bbox_y2            INTEGER NOT NULL DEFAULT 0,
    distance_estimate  REAL,
    timestamp          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notification_logs (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    fall_event_id      INTEGER NOT NULL REFERENCES fall_events(id),
    notification_type  TEXT NOT NULL,
    recipient          TEXT NOT NULL,
    status             TEXT NOT NULL,
    sent_at            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS system_logs (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id  TEXT,
    log_level  TEXT NOT NULL,
    message    TEXT NOT NULL,
    timestamp  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for common query patterns
CREATE INDEX IF NOT EXISTS idx_sensor_device_ts    ON sensor_data(device_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_gps_device_ts       ON gps_tracking(device_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_falls_device_ts     ON fall_events(device_id, detected_at);
CREATE INDEX IF NOT EXISTS idx_activities_device   ON daily_activities(device_id, start_time);
CREATE INDEX IF NOT EXISTS idx_obstacles_device_ts ON obstacle_detections(device_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_notifications_fall  ON notification_logs(fall_event_id);
CREATE INDEX IF NOT EXISTS idx_syslogs_device_ts   ON system_logs(device_id, timestamp);
"""

# ---------------------------------------------------------------------------
# V2: at most one open activity interval per device, enforced by storage
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_activities_one_open
    ON daily_activities(device_id) WHERE end_time IS NULL;
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class TelemetryDatabase:
    """SQLite database manager for the SAFE telemetry store.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = TelemetryDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
        """
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return  # Already initialized

        # Request handlers may run on a different thread than the one that
        # opened the connection (ASGI test clients, threadpool tools).
        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Telemetry database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        # V1: Core tables (always applied, CREATE IF NOT EXISTS)
        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        # V2: one open activity interval per device
        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: idx_activities_one_open")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Telemetry database closed")

    def __enter__(self) -> TelemetryDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
