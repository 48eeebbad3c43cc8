"""Data models for the telemetry persistence layer."""

from __future__ import annotations

from dataclasses import dataclass

ACTIVITY_TYPES = ("standing", "walking", "sitting", "sleeping", "unknown")

LOG_LEVELS = ("info", "warning", "error", "critical")


@dataclass
class Device:
    """A registered wearable and the profile of the person wearing it.

    ``emergency_contact`` and ``medical_condition`` are encrypted at rest
    when the repository has an encryptor.
    """

    device_id: str
    name: str = ""
    age: int | None = None
    emergency_contact: str | None = None
    medical_condition: str | None = None
    battery_level: int = 100
    is_active: bool = True
    updated_at: str = ""

    def as_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "name": self.name,
            "age": self.age,
            "emergency_contact": self.emergency_contact,
            "medical_condition": self.medical_condition,
            "battery_level": self.battery_level,
            "is_active": self.is_active,
            "updated_at": self.updated_at,
        }


@dataclass
class SensorReading:
    """One IMU sample (3-axis accelerometer + 3-axis gyroscope)."""

    device_id: str
    sensor_id: int = 1
    acc_x: float = 0.0
    acc_y: float = 0.0
    acc_z: float = 0.0
    gyro_x: float = 0.0
    gyro_y: float = 0.0
    gyro_z: float = 0.0
    timestamp: str = ""
    id: int | None = None


@dataclass
class GPSFix:
    device_id: str
    latitude: float
    longitude: float
    accuracy: float | None = None
    timestamp: str = ""
    id: int | None = None


@dataclass
class ActivityInterval:
    """A contiguous span during which a device's classified activity was constant.

    ``end_time`` is None while the interval is open. ``duration_seconds`` is
    only set when the interval is closed.
    """

    device_id: str
    activity_type: str  # one of ACTIVITY_TYPES
    confidence: float
    start_time: str
    end_time: str | None = None
    duration_seconds: int | None = None
    id: int | None = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass
class FallEvent:
    device_id: str
    confidence: float
    severity: str  # 'low' | 'medium' | 'high'
    latitude: float | None = None
    longitude: float | None = None
    status: str = "detected"  # 'detected' | 'acknowledged' | 'resolved'
    detected_at: str = ""
    id: int | None = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "confidence": self.confidence,
            "severity": self.severity,
            "status": self.status,
            "detected_at": self.detected_at,
        }


@dataclass
class ObstacleDetection:
    device_id: str
    object_class: str = "unknown"
    confidence: float = 0.0
    bbox: tuple[int, int, int, int] = (0, 0, 0, 0)  # x1, y1, x2, y2
    distance_estimate: float | None = None
    timestamp: str = ""
    id: int | None = None


@dataclass
class NotificationLog:
    """Record of a notification that was (nominally) sent for a fall event."""

    fall_event_id: int
    recipient: str
    notification_type: str = "push"
    status: str = "sent"
    sent_at: str = ""
    id: int | None = None


@dataclass
class SystemLogEntry:
    """A persisted diagnostic trail entry."""

    device_id: str | None
    log_level: str  # one of LOG_LEVELS
    message: str
    timestamp: str = ""
    id: int | None = None
