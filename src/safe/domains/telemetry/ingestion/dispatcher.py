"""Ingestion dispatcher: validates typed telemetry envelopes and routes them.

Each envelope carries ``data_type`` and ``device_id`` plus type-specific
fields. Validation happens before any storage access; a handler failure is
written to ``system_logs`` and surfaced as :class:`ProcessingError`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PayloadValidationError

from safe.core.storage.models import GPSFix, ObstacleDetection, SensorReading
from safe.core.storage.repository import PersistenceError, TelemetryRepository
from safe.domains.telemetry.domain_logic.activity_tracker import ActivitySessionTracker
from safe.domains.telemetry.domain_logic.fall_alerts import FallAlertService
from safe.domains.telemetry.errors import ProcessingError, ValidationError
from safe.domains.telemetry.ingestion.schemas import (
    PAYLOAD_MODELS,
    ActivityPayload,
    BatteryPayload,
    EventPayload,
    FallDetectionPayload,
    GPSPayload,
    ObstaclePayload,
    SensorPayload,
)

logger = logging.getLogger(__name__)

DEFAULT_LOW_BATTERY_THRESHOLD = 20
DEFAULT_NEAR_OBSTACLE_DISTANCE_M = 1.0


@dataclass
class IngestResult:
    """Successful outcome of one ingestion request."""

    message: str
    data: dict[str, Any] = field(default_factory=dict)


def _describe(exc: PayloadValidationError) -> str:
    """Flatten pydantic errors into one human-readable line."""
    parts = []
    for error in exc.errors():
        msg = error["msg"].removeprefix("Value error, ")
        loc = ".".join(str(item) for item in error["loc"])
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


class IngestionDispatcher:
    """Routes telemetry envelopes to their handlers.

    Usage::

        dispatcher = IngestionDispatcher(repository)
        result = dispatcher.dispatch({"data_type": "gps", "device_id": "SAFE-001",
                                      "latitude": -7.25, "longitude": 112.77})
        result.message  # 'GPS data saved successfully'
    """

    def __init__(
        self,
        repository: TelemetryRepository,
        *,
        tracker: ActivitySessionTracker | None = None,
        fall_alerts: FallAlertService | None = None,
        low_battery_threshold: int = DEFAULT_LOW_BATTERY_THRESHOLD,
        near_obstacle_distance_m: float = DEFAULT_NEAR_OBSTACLE_DISTANCE_M,
    ) -> None:
        self._repo = repository
        self._tracker = tracker or ActivitySessionTracker(repository)
        self._fall_alerts = fall_alerts or FallAlertService(repository)
        self._low_battery_threshold = low_battery_threshold
        self._near_obstacle_distance_m = near_obstacle_distance_m

        self._handlers: dict[str, Callable[[str, Any, datetime], IngestResult]] = {
            "sensor": self._handle_sensor,
            "gps": self._handle_gps,
            "fall_detection": self._handle_fall,
            "activity": self._handle_activity,
            "obstacle": self._handle_obstacle,
            "battery": self._handle_battery,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def dispatch_raw(self, body: bytes | str, *, now: datetime | None = None) -> IngestResult:
        """Decode a JSON request body and dispatch it."""
        try:
            envelope = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError(f"Invalid JSON format: {exc}") from exc
        return self.dispatch(envelope, now=now)

    def dispatch(self, envelope: Any, *, now: datetime | None = None) -> IngestResult:
        """Validate an envelope and run its handler.

        Raises:
            ValidationError: Missing/unknown ``data_type``, missing ``device_id``,
                or invalid type-specific fields. Nothing is written.
            ProcessingError: The handler failed; an error entry was logged.
        """
        data_type, device_id = self._validate_envelope(envelope)
        payload = self._validate_payload(data_type, envelope)
        now = now or self._repo.now()

        try:
            result = self._handlers[data_type](device_id, payload, now)
        except ValidationError:
            raise
        except Exception as exc:
            logger.exception("Error processing %s from %s", data_type, device_id)
            self._log(device_id, "error", f"Error processing {data_type}: {exc}", now)
            raise ProcessingError(
                f"Error processing {data_type} data",
                data_type=data_type,
                device_id=device_id,
            ) from exc

        logger.debug("Processed %s from %s", data_type, device_id)
        return result

    @staticmethod
    def _validate_envelope(envelope: Any) -> tuple[str, str]:
        if not isinstance(envelope, dict):
            raise ValidationError("Invalid JSON format: expected an object")
        if "data_type" not in envelope or "device_id" not in envelope:
            raise ValidationError("Missing required fields: data_type and device_id")

        data_type = envelope["data_type"]
        device_id = envelope["device_id"]
        if not isinstance(device_id, str) or not device_id.strip():
            raise ValidationError("device_id must be a non-empty string")
        if not isinstance(data_type, str) or data_type.strip() not in PAYLOAD_MODELS:
            raise ValidationError(f"Unknown data_type: {data_type}")
        return data_type.strip(), device_id.strip()

    @staticmethod
    def _validate_payload(data_type: str, envelope: dict[str, Any]) -> EventPayload:
        fields = {k: v for k, v in envelope.items() if k not in ("data_type", "device_id")}
        try:
            return PAYLOAD_MODELS[data_type].model_validate(fields)
        except PayloadValidationError as exc:
            raise ValidationError(_describe(exc)) from exc

    def _log(self, device_id: str, level: str, message: str, now: datetime) -> None:
        """Best-effort diagnostic entry; a failed write never fails the request."""
        try:
            self._repo.insert_system_log(device_id, level, message, now)
        except PersistenceError:
            logger.exception("Failed to write %s system log for %s, entry lost", level, device_id)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_sensor(self, device_id: str, payload: SensorPayload, now: datetime) -> IngestResult:
        reading = SensorReading(
            device_id=device_id,
            timestamp=self._repo.localize(now).isoformat(timespec="seconds"),
            **payload.model_dump(),
        )
        row_id = self._repo.insert_sensor_reading(reading)
        return IngestResult("Sensor data saved successfully", {"id": row_id})

    def _handle_gps(self, device_id: str, payload: GPSPayload, now: datetime) -> IngestResult:
        fix = GPSFix(
            device_id=device_id,
            latitude=payload.latitude,
            longitude=payload.longitude,
            accuracy=payload.accuracy,
            timestamp=self._repo.localize(now).isoformat(timespec="seconds"),
        )
        row_id = self._repo.insert_gps_fix(fix)
        return IngestResult(
            "GPS data saved successfully",
            {"id": row_id, "latitude": fix.latitude, "longitude": fix.longitude},
        )

    def _handle_fall(self, device_id: str, payload: FallDetectionPayload, now: datetime) -> IngestResult:
        alert = self._fall_alerts.record_fall(
            device_id,
            payload.confidence,
            latitude=payload.latitude,
            longitude=payload.longitude,
            now=now,
        )
        return IngestResult("Fall event recorded successfully", alert.as_dict())

    def _handle_activity(self, device_id: str, payload: ActivityPayload, now: datetime) -> IngestResult:
        update = self._tracker.observe(device_id, payload.activity_type, payload.confidence, now=now)
        return IngestResult(update.message, update.as_dict())

    def _handle_obstacle(self, device_id: str, payload: ObstaclePayload, now: datetime) -> IngestResult:
        detection = ObstacleDetection(
            device_id=device_id,
            object_class=payload.object_class,
            confidence=payload.confidence,
            bbox=payload.bbox,
            distance_estimate=payload.distance,
            timestamp=self._repo.localize(now).isoformat(timespec="seconds"),
        )
        row_id = self._repo.insert_obstacle_detection(detection)

        if payload.distance is not None and payload.distance < self._near_obstacle_distance_m:
            self._log(
                device_id,
                "warning",
                f"Obstacle detected nearby: {payload.object_class} at {payload.distance}m",
                now,
            )
        return IngestResult("Obstacle detection saved", {"id": row_id})

    def _handle_battery(self, device_id: str, payload: BatteryPayload, now: datetime) -> IngestResult:
        level = payload.battery_level
        if not self._repo.update_battery_level(device_id, level, now):
            logger.warning("Battery update for unregistered device %s", device_id)

        if level < self._low_battery_threshold:
            self._log(device_id, "warning", f"Low battery: {level}%", now)
        return IngestResult("Battery level updated", {"battery_level": level})
