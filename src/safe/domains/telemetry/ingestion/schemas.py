"""Pydantic models for the type-specific fields of an ingestion envelope."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from safe.core.storage.models import ACTIVITY_TYPES


class EventPayload(BaseModel):
    """Common behaviour: unknown keys are ignored, explicit nulls fall back to defaults
    and non-finite numbers (inf, nan) are rejected.
    """

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class SensorPayload(EventPayload):
    """IMU sample from the wearable."""

    sensor_id: int = Field(default=1, description="Sensor index on the device")
    acc_x: float = Field(default=0.0, description="X-axis acceleration")
    acc_y: float = Field(default=0.0, description="Y-axis acceleration")
    acc_z: float = Field(default=0.0, description="Z-axis acceleration")
    gyro_x: float = Field(default=0.0, description="X-axis angular velocity")
    gyro_y: float = Field(default=0.0, description="Y-axis angular velocity")
    gyro_z: float = Field(default=0.0, description="Z-axis angular velocity")


class GPSPayload(EventPayload):
    latitude: float = Field(ge=-90.0, le=90.0, description="Latitude in decimal degrees")
    longitude: float = Field(ge=-180.0, le=180.0, description="Longitude in decimal degrees")
    accuracy: float | None = Field(default=None, description="GPS accuracy in meters")

    @model_validator(mode="before")
    @classmethod
    def _require_coordinates(cls, data: Any) -> Any:
        if isinstance(data, dict) and (data.get("latitude") is None or data.get("longitude") is None):
            raise ValueError("Missing GPS coordinates")
        return data


class FallDetectionPayload(EventPayload):
    latitude: float | None = Field(
        default=None, ge=-90.0, le=90.0, description="Where the fall happened, if known"
    )
    longitude: float | None = Field(
        default=None, ge=-180.0, le=180.0, description="Where the fall happened, if known"
    )
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Detector confidence 0-1")


class ActivityPayload(EventPayload):
    activity_type: str = Field(default="unknown", description="Classified activity kind")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Classifier confidence 0-1")

    @field_validator("activity_type")
    @classmethod
    def _known_activity(cls, value: str) -> str:
        if value not in ACTIVITY_TYPES:
            raise ValueError("Invalid activity type")
        return value


class ObstaclePayload(EventPayload):
    object_class: str = Field(default="unknown", description="Detector class label")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Detector confidence 0-1")
    bbox: tuple[int, int, int, int] = Field(default=(0, 0, 0, 0), description="[x1, y1, x2, y2]")
    distance: float | None = Field(default=None, ge=0.0, description="Estimated distance in meters")

    @field_validator("bbox", mode="before")
    @classmethod
    def _pad_bbox(cls, value: Any) -> tuple[int, int, int, int]:
        if not isinstance(value, (list, tuple)):
            raise ValueError("bbox must be a sequence of numbers")
        coords = list(value[:4]) + [0] * (4 - min(len(value), 4))
        try:
            return tuple(int(float(c if c is not None else 0)) for c in coords)
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError("bbox must be a sequence of numbers") from exc


class BatteryPayload(EventPayload):
    battery_level: int = Field(default=100, ge=0, le=100, description="Battery percentage")


PAYLOAD_MODELS: dict[str, type[EventPayload]] = {
    "sensor": SensorPayload,
    "gps": GPSPayload,
    "fall_detection": FallDetectionPayload,
    "activity": ActivityPayload,
    "obstacle": ObstaclePayload,
    "battery": BatteryPayload,
}

DATA_TYPES = tuple(PAYLOAD_MODELS)
