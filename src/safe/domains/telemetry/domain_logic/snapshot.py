"""Dashboard snapshot assembly.

Composes the latest-state view of one device from independent reads. A
missing sub-result (no GPS fix yet, no open activity, ...) degrades to a
fixed default instead of failing the whole snapshot.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from safe.core.storage.repository import PersistenceError, TelemetryRepository

logger = logging.getLogger(__name__)

# Shown on the dashboard map before the device reports its first fix
DEFAULT_LATITUDE = -7.250445
DEFAULT_LONGITUDE = 112.768845


class SnapshotAssembler:
    """Builds the dashboard payload for a device.

    Usage::

        assembler = SnapshotAssembler(repository)
        snapshot = assembler.assemble("SAFE-001")
        snapshot["today_falls"]["count"]
    """

    def __init__(self, repository: TelemetryRepository) -> None:
        self._repo = repository

    def assemble(self, device_id: str, *, now: datetime | None = None) -> dict[str, Any]:
        """Compose device info, GPS, activity, falls, summary and latest sensor row.

        Raises:
            PersistenceError: If the store cannot be read at all.
        """
        now = self._repo.localize(now or self._repo.now())

        snapshot = {
            "device_info": self.device_info(device_id),
            "gps": self.latest_gps(device_id),
            "current_activity": self.current_activity(device_id, now),
            "today_falls": self.today_falls(device_id, now),
            "activity_summary": self.activity_summary(device_id, now),
            "latest_sensor": self.latest_sensor(device_id),
        }
        logger.debug("Assembled snapshot for %s", device_id)
        return snapshot

    def device_info(self, device_id: str) -> dict[str, Any] | None:
        """Device profile, or None when unregistered or unreadable (e.g. after a key rotation)."""
        try:
            device = self._repo.get_device(device_id)
        except PersistenceError:
            logger.exception("Could not read device profile for %s", device_id)
            return None
        return device.as_dict() if device is not None else None

    def latest_gps(self, device_id: str) -> dict[str, Any]:
        fix = self._repo.get_latest_gps_fix(device_id)
        if fix is None:
            return {
                "latitude": DEFAULT_LATITUDE,
                "longitude": DEFAULT_LONGITUDE,
                "accuracy": None,
                "timestamp": None,
            }
        return {
            "latitude": fix.latitude,
            "longitude": fix.longitude,
            "accuracy": fix.accuracy,
            "timestamp": fix.timestamp,
        }

    def current_activity(self, device_id: str, now: datetime) -> dict[str, Any]:
        interval = self._repo.get_open_activity_interval(device_id)
        if interval is None:
            return {
                "activity_type": "unknown",
                "confidence": 0,
                "start_time": None,
                "duration_minutes": 0,
            }

        elapsed = (now - self._repo.parse_timestamp(interval.start_time)).total_seconds()
        return {
            "activity_type": interval.activity_type,
            "confidence": interval.confidence,
            "start_time": interval.start_time,
            "duration_minutes": max(0, int(elapsed // 60)),
        }

    def today_falls(self, device_id: str, now: datetime) -> dict[str, Any]:
        falls = self._repo.get_falls_on(device_id, now.date())
        return {
            "count": len(falls),
            "events": [fall.as_dict() for fall in falls],
        }

    def activity_summary(self, device_id: str, now: datetime) -> dict[str, Any]:
        """Minutes, interval count and share of the day per activity kind.

        Minutes come from closed intervals only, rounded half up. Percentages
        are left out when nothing has been tracked yet.
        """
        activities: dict[str, dict[str, Any]] = {}
        total_minutes = 0

        for activity_type, total_seconds, count in self._repo.get_activity_totals_on(device_id, now.date()):
            minutes = (total_seconds + 30) // 60
            activities[activity_type] = {"minutes": minutes, "count": count}
            total_minutes += minutes

        if total_minutes > 0:
            for entry in activities.values():
                entry["percentage"] = round(entry["minutes"] / total_minutes * 100, 1)

        return {
            "total_minutes": total_minutes,
            "activities": activities,
        }

    def latest_sensor(self, device_id: str) -> dict[str, Any] | None:
        reading = self._repo.get_latest_sensor_reading(device_id)
        if reading is None:
            return None
        return {
            "acc_x": reading.acc_x,
            "acc_y": reading.acc_y,
            "acc_z": reading.acc_z,
            "gyro_x": reading.gyro_x,
            "gyro_y": reading.gyro_y,
            "gyro_z": reading.gyro_z,
            "timestamp": reading.timestamp,
        }
