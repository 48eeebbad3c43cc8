"""Telemetry repository: typed reads and writes over the SQLite store.

The repository mediates between domain records (SensorReading, FallEvent,
ActivityInterval, ...) and the database. All timestamps are written as ISO
8601 strings in the server-local time zone so that "today" filters can match
on the date prefix.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from safe.core.storage.database import DatabaseError, TelemetryDatabase
from safe.core.storage.encryption import EncryptionError, FieldEncryptor
from safe.core.storage.models import (
    LOG_LEVELS,
    ActivityInterval,
    Device,
    FallEvent,
    GPSFix,
    NotificationLog,
    ObstacleDetection,
    SensorReading,
    SystemLogEntry,
)

logger = logging.getLogger(__name__)

_COUNTED_TABLES = (
    "devices",
    "sensor_data",
    "gps_tracking",
    "fall_events",
    "daily_activities",
    "obstacle_detections",
    "notification_logs",
    "system_logs",
)


class PersistenceError(Exception):
    """Raised when the store is unavailable or rejects a read or write."""


class TelemetryRepository:
    """Typed gateway over the telemetry database.

    Every storage fault (closed connection, constraint violation, I/O error)
    is raised as :class:`PersistenceError`. Writes commit immediately unless
    they run inside :meth:`transaction`.

    Usage::

        db = TelemetryDatabase(":memory:")
        db.initialize()
        repo = TelemetryRepository(db, timezone="Asia/Jakarta")

        with repo.transaction():
            repo.close_activity_interval(interval_id, now)
            repo.open_activity_interval("SAFE-001", "walking", 0.8, now)
    """

    def __init__(
        self,
        database: TelemetryDatabase,
        encryptor: FieldEncryptor | None = None,
        *,
        timezone: str | tzinfo = "UTC",
    ) -> None:
        self._db = database
        self._enc = encryptor
        self._tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
        self._in_transaction = False

    # ------------------------------------------------------------------
    # Clock helpers
    # ------------------------------------------------------------------

    @property
    def timezone(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        """Current server-local time."""
        return datetime.now(self._tz)

    def localize(self, moment: datetime) -> datetime:
        """Express a datetime in the server zone; naive values are taken as local."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self._tz)
        return moment.astimezone(self._tz)

    def parse_timestamp(self, value: str) -> datetime:
        return self.localize(datetime.fromisoformat(value))

    def _stamp(self, moment: datetime | None = None) -> str:
        return self.localize(moment or self.now()).isoformat(timespec="seconds")

    # ------------------------------------------------------------------
    # Low-level execution
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes into a single commit, rolling back on failure.

        Nested use joins the outer transaction.
        """
        if self._in_transaction:
            yield
            return

        self._in_transaction = True
        try:
            yield
        except BaseException:
            try:
                self._connection().rollback()
            except (sqlite3.Error, PersistenceError):
                logger.exception("Rollback failed")
            raise
        else:
            try:
                self._connection().commit()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Commit failed: {exc}") from exc
        finally:
            self._in_transaction = False

    def _connection(self) -> sqlite3.Connection:
        try:
            return self._db.connection
        except DatabaseError as exc:
            raise PersistenceError(str(exc)) from exc

    def _write(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        conn = self._connection()
        try:
            cursor = conn.execute(sql, params)
            if not self._in_transaction:
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Write rejected: {exc}") from exc
        return cursor

    def _fetch(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        conn = self._connection()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Query failed: {exc}") from exc

    def _fetch_one(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        rows = self._fetch(sql, params)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def upsert_device(self, device: Device, now: datetime | None = None) -> None:
        """Insert or update a device profile. Sensitive fields are encrypted."""
        stamp = self._stamp(now)
        try:
            contact = self._enc.encrypt(device.emergency_contact) if self._enc else device.emergency_contact
            condition = self._enc.encrypt(device.medical_condition) if self._enc else device.medical_condition
        except EncryptionError as exc:
            raise PersistenceError(f"Could not seal device profile: {exc}") from exc

        self._write(
            """INSERT INTO devices (device_id, name, age, emergency_contact, medical_condition,
                                    battery_level, is_active, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(device_id) DO UPDATE SET
                   name = excluded.name,
                   age = excluded.age,
                   emergency_contact = excluded.emergency_contact,
                   medical_condition = excluded.medical_condition,
                   battery_level = excluded.battery_level,
                   is_active = excluded.is_active,
                   updated_at = excluded.updated_at""",
            (
                device.device_id,
                device.name,
                device.age,
                contact,
                condition,
                device.battery_level,
                int(device.is_active),
                stamp,
                stamp,
            ),
        )
        logger.info("Upserted device %s", device.device_id)

    def get_device(self, device_id: str) -> Device | None:
        """Retrieve a device profile with decrypted sensitive fields."""
        row = self._fetch_one("SELECT * FROM devices WHERE device_id = ?", (device_id,))
        if row is None:
            return None

        contact = row["emergency_contact"]
        condition = row["medical_condition"]
        if self._enc is not None:
            try:
                contact = self._enc.decrypt(contact)
                condition = self._enc.decrypt(condition)
            except EncryptionError as exc:
                raise PersistenceError(f"Could not open device profile: {exc}") from exc

        return Device(
            device_id=row["device_id"],
            name=row["name"],
            age=row["age"],
            emergency_contact=contact,
            medical_condition=condition,
            battery_level=row["battery_level"],
            is_active=bool(row["is_active"]),
            updated_at=row["updated_at"],
        )

    def update_battery_level(self, device_id: str, level: int, now: datetime | None = None) -> bool:
        """Set a device's battery level.

        Returns:
            True if a registered device was updated, False if none matched.
        """
        cursor = self._write(
            "UPDATE devices SET battery_level = ?, updated_at = ? WHERE device_id = ?",
            (level, self._stamp(now), device_id),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Raw telemetry (append-only)
    # ------------------------------------------------------------------

    def insert_sensor_reading(self, reading: SensorReading) -> int:
        cursor = self._write(
            """INSERT INTO sensor_data
               (device_id, sensor_id, acc_x, acc_y, acc_z, gyro_x, gyro_y, gyro_z, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                reading.device_id,
                reading.sensor_id,
                reading.acc_x,
                reading.acc_y,
                reading.acc_z,
                reading.gyro_x,
                reading.gyro_y,
                reading.gyro_z,
                reading.timestamp or self._stamp(),
            ),
        )
        return cursor.lastrowid

    def insert_gps_fix(self, fix: GPSFix) -> int:
        cursor = self._write(
            """INSERT INTO gps_tracking (device_id, latitude, longitude, accuracy, timestamp)
               VALUES (?, ?, ?, ?, ?)""",
            (fix.device_id, fix.latitude, fix.longitude, fix.accuracy, fix.timestamp or self._stamp()),
        )
        return cursor.lastrowid

    def insert_obstacle_detection(self, detection: ObstacleDetection) -> int:
        x1, y1, x2, y2 = detection.bbox
        cursor = self._write(
            """INSERT INTO obstacle_detections
               (device_id, object_class, confidence, bbox_x1, bbox_y1, bbox_x2, bbox_y2,
                distance_estimate, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                detection.device_id,
                detection.object_class,
                detection.confidence,
                x1,
                y1,
                x2,
                y2,
                detection.distance_estimate,
                detection.timestamp or self._stamp(),
            ),
        )
        return cursor.lastrowid

    def insert_fall_event(self, event: FallEvent) -> int:
        cursor = self._write(
            """INSERT INTO fall_events
               (device_id, latitude, longitude, confidence, severity, status, detected_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                event.device_id,
                event.latitude,
                event.longitude,
                event.confidence,
                event.severity,
                event.status,
                event.detected_at or self._stamp(),
            ),
        )
        return cursor.lastrowid

    def get_latest_gps_fix(self, device_id: str) -> GPSFix | None:
        row = self._fetch_one(
            """SELECT * FROM gps_tracking WHERE device_id = ?
               ORDER BY timestamp DESC, id DESC LIMIT 1""",
            (device_id,),
        )
        if row is None:
            return None
        return GPSFix(
            id=row["id"],
            device_id=row["device_id"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            accuracy=row["accuracy"],
            timestamp=row["timestamp"],
        )

    def get_latest_sensor_reading(self, device_id: str) -> SensorReading | None:
        row = self._fetch_one(
            """SELECT * FROM sensor_data WHERE device_id = ?
               ORDER BY timestamp DESC, id DESC LIMIT 1""",
            (device_id,),
        )
        if row is None:
            return None
        return SensorReading(
            id=row["id"],
            device_id=row["device_id"],
            sensor_id=row["sensor_id"],
            acc_x=row["acc_x"],
            acc_y=row["acc_y"],
            acc_z=row["acc_z"],
            gyro_x=row["gyro_x"],
            gyro_y=row["gyro_y"],
            gyro_z=row["gyro_z"],
            timestamp=row["timestamp"],
        )

    def get_falls_on(self, device_id: str, day: date) -> list[FallEvent]:
        """Fall events detected on a server-local calendar day, newest first."""
        rows = self._fetch(
            """SELECT * FROM fall_events
               WHERE device_id = ? AND substr(detected_at, 1, 10) = ?
               ORDER BY detected_at DESC, id DESC""",
            (device_id, day.isoformat()),
        )
        return [self._row_to_fall(row) for row in rows]

    # ------------------------------------------------------------------
    # Activity intervals
    # ------------------------------------------------------------------

    def get_open_activity_interval(self, device_id: str) -> ActivityInterval | None:
        """Return the device's open interval (end_time NULL), most recent by start."""
        row = self._fetch_one(
            """SELECT * FROM daily_activities
               WHERE device_id = ? AND end_time IS NULL
               ORDER BY start_time DESC, id DESC LIMIT 1""",
            (device_id,),
        )
        return self._row_to_interval(row) if row is not None else None

    def open_activity_interval(
        self,
        device_id: str,
        activity_type: str,
        confidence: float,
        now: datetime,
    ) -> ActivityInterval:
        start = self._stamp(now)
        cursor = self._write(
            """INSERT INTO daily_activities (device_id, activity_type, confidence, start_time)
               VALUES (?, ?, ?, ?)""",
            (device_id, activity_type, confidence, start),
        )
        return ActivityInterval(
            id=cursor.lastrowid,
            device_id=device_id,
            activity_type=activity_type,
            confidence=confidence,
            start_time=start,
        )

    def close_activity_interval(self, interval_id: int, now: datetime) -> ActivityInterval | None:
        """Close an open interval, computing its duration from the stored start.

        The update only applies while the interval is still open, so two
        requests racing on the same interval cannot both close it.

        Returns:
            The closed interval, or None if it was missing or already closed.
        """
        row = self._fetch_one("SELECT * FROM daily_activities WHERE id = ?", (interval_id,))
        if row is None or row["end_time"] is not None:
            return None

        interval = self._row_to_interval(row)
        closed_at = self.localize(now)
        elapsed = (closed_at - self.parse_timestamp(interval.start_time)).total_seconds()
        duration = max(0, int(elapsed))
        end = closed_at.isoformat(timespec="seconds")

        cursor = self._write(
            """UPDATE daily_activities SET end_time = ?, duration_seconds = ?
               WHERE id = ? AND end_time IS NULL""",
            (end, duration, interval_id),
        )
        if cursor.rowcount == 0:
            return None

        interval.end_time = end
        interval.duration_seconds = duration
        return interval

    def get_activity_intervals(self, device_id: str, *, limit: int = 100) -> list[ActivityInterval]:
        """List a device's intervals, newest start first."""
        rows = self._fetch(
            """SELECT * FROM daily_activities WHERE device_id = ?
               ORDER BY start_time DESC, id DESC LIMIT ?""",
            (device_id, limit),
        )
        return [self._row_to_interval(row) for row in rows]

    def get_activity_totals_on(self, device_id: str, day: date) -> list[tuple[str, int, int]]:
        """Per-kind totals for intervals started on a server-local day.

        Returns:
            ``(activity_type, total_seconds, count)`` tuples. Open intervals
            count towards ``count`` but contribute no seconds.
        """
        rows = self._fetch(
            """SELECT activity_type,
                      COALESCE(SUM(duration_seconds), 0) AS total_seconds,
                      COUNT(*) AS count
               FROM daily_activities
               WHERE device_id = ? AND substr(start_time, 1, 10) = ?
               GROUP BY activity_type
               ORDER BY activity_type""",
            (device_id, day.isoformat()),
        )
        return [(row["activity_type"], int(row["total_seconds"]), int(row["count"])) for row in rows]

    # ------------------------------------------------------------------
    # Diagnostics and notifications
    # ------------------------------------------------------------------

    def insert_system_log(
        self,
        device_id: str | None,
        level: str,
        message: str,
        now: datetime | None = None,
    ) -> int:
        if level not in LOG_LEVELS:
            raise PersistenceError(f"Invalid log level: {level!r}. Valid: {LOG_LEVELS}")
        cursor = self._write(
            "INSERT INTO system_logs (device_id, log_level, message, timestamp) VALUES (?, ?, ?, ?)",
            (device_id, level, message, self._stamp(now)),
        )
        return cursor.lastrowid

    def get_system_logs(
        self,
        *,
        device_id: str | None = None,
        level: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[SystemLogEntry]:
        """Query the diagnostic trail, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if device_id:
            conditions.append("device_id = ?")
            params.append(device_id)
        if level:
            conditions.append("log_level = ?")
            params.append(level)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM system_logs{where} ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        return [
            SystemLogEntry(
                id=row["id"],
                device_id=row["device_id"],
                log_level=row["log_level"],
                message=row["message"],
                timestamp=row["timestamp"],
            )
            for row in self._fetch(query, params)
        ]

    def insert_notification_log(self, notification: NotificationLog) -> int:
        cursor = self._write(
            """INSERT INTO notification_logs
               (fall_event_id, notification_type, recipient, status, sent_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                notification.fall_event_id,
                notification.notification_type,
                notification.recipient,
                notification.status,
                notification.sent_at or self._stamp(),
            ),
        )
        return cursor.lastrowid

    def get_notification_logs(self, fall_event_id: int | None = None, *, limit: int = 50) -> list[NotificationLog]:
        if fall_event_id is not None:
            rows = self._fetch(
                "SELECT * FROM notification_logs WHERE fall_event_id = ? ORDER BY id DESC LIMIT ?",
                (fall_event_id, limit),
            )
        else:
            rows = self._fetch("SELECT * FROM notification_logs ORDER BY id DESC LIMIT ?", (limit,))
        return [
            NotificationLog(
                id=row["id"],
                fall_event_id=row["fall_event_id"],
                notification_type=row["notification_type"],
                recipient=row["recipient"],
                status=row["status"],
                sent_at=row["sent_at"],
            )
            for row in rows
        ]

    def count_records(self) -> dict[str, int]:
        """Row counts per table, for health reporting."""
        return {
            table: self._fetch_one(f"SELECT COUNT(*) FROM {table}")[0]
            for table in _COUNTED_TABLES
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_interval(row: Any) -> ActivityInterval:
        return ActivityInterval(
            id=row["id"],
            device_id=row["device_id"],
            activity_type=row["activity_type"],
            confidence=row["confidence"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            duration_seconds=row["duration_seconds"],
        )

    @staticmethod
    def _row_to_fall(row: Any) -> FallEvent:
        return FallEvent(
            id=row["id"],
            device_id=row["device_id"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            confidence=row["confidence"],
            severity=row["severity"],
            status=row["status"],
            detected_at=row["detected_at"],
        )
