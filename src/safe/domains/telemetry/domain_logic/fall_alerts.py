"""Fall severity classification and caregiver notification.

Notification delivery is recorded, not performed: one ``notification_logs``
row per fall event, written after the fall event itself is committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from safe.core.storage.models import FallEvent, NotificationLog
from safe.core.storage.repository import PersistenceError, TelemetryRepository

logger = logging.getLogger(__name__)

Severity = Literal["low", "medium", "high"]

# Lower bounds are inclusive
HIGH_SEVERITY_THRESHOLD = 0.90
MEDIUM_SEVERITY_THRESHOLD = 0.70

UNKNOWN_RECIPIENT = "unknown"


def classify_severity(confidence: float) -> Severity:
    """Map a fall-detection confidence onto a severity tier."""
    if confidence >= HIGH_SEVERITY_THRESHOLD:
        return "high"
    if confidence >= MEDIUM_SEVERITY_THRESHOLD:
        return "medium"
    return "low"


class FallNotifier:
    """Records a push notification addressed to the device's emergency contact."""

    def __init__(self, repository: TelemetryRepository) -> None:
        self._repo = repository

    def notify(self, fall: FallEvent) -> NotificationLog:
        """Write one notification row for ``fall``.

        The recipient falls back to ``"unknown"`` when the device is not
        registered, has no contact on file, or its profile cannot be read.

        Raises:
            PersistenceError: If the notification row itself cannot be written.
        """
        recipient = UNKNOWN_RECIPIENT
        try:
            device = self._repo.get_device(fall.device_id)
        except PersistenceError:
            logger.exception("Could not look up emergency contact for %s", fall.device_id)
            device = None
        if device is not None and device.emergency_contact:
            recipient = device.emergency_contact

        notification = NotificationLog(fall_event_id=fall.id, recipient=recipient)
        notification.id = self._repo.insert_notification_log(notification)
        # Real push/SMS/email delivery would be dispatched here.
        logger.info("Fall %s notification recorded for device %s", fall.id, fall.device_id)
        return notification


@dataclass
class FallAlert:
    fall: FallEvent
    notification: NotificationLog | None

    @property
    def notification_sent(self) -> bool:
        return self.notification is not None

    def as_dict(self) -> dict:
        return {
            "fall_id": self.fall.id,
            "severity": self.fall.severity,
            "notification_sent": self.notification_sent,
        }


class FallAlertService:
    """Persists a fall event, raises a critical log entry, then notifies.

    Usage::

        service = FallAlertService(repository)
        alert = service.record_fall("SAFE-001", 0.95, latitude=-7.25, longitude=112.77)
        alert.fall.severity  # 'high'
    """

    def __init__(self, repository: TelemetryRepository, notifier: FallNotifier | None = None) -> None:
        self._repo = repository
        self._notifier = notifier or FallNotifier(repository)

    def record_fall(
        self,
        device_id: str,
        confidence: float,
        *,
        latitude: float | None = None,
        longitude: float | None = None,
        now: datetime | None = None,
    ) -> FallAlert:
        """Record a detected fall.

        Raises:
            PersistenceError: Only if the fall event itself cannot be written.
                Failures after that point are logged and reflected in
                ``FallAlert.notification_sent``.
        """
        now = now or self._repo.now()
        fall = FallEvent(
            device_id=device_id,
            confidence=confidence,
            severity=classify_severity(confidence),
            latitude=latitude,
            longitude=longitude,
            status="detected",
            detected_at=self._repo.localize(now).isoformat(timespec="seconds"),
        )
        fall.id = self._repo.insert_fall_event(fall)
        logger.warning("Fall detected on %s (confidence=%s, severity=%s)", device_id, confidence, fall.severity)

        try:
            self._repo.insert_system_log(device_id, "critical", f"FALL DETECTED! Confidence: {confidence}", now)
        except PersistenceError:
            logger.exception("Failed to write critical log for fall %s, entry lost", fall.id)

        try:
            notification = self._notifier.notify(fall)
        except PersistenceError:
            logger.exception("Failed to record notification for fall %s", fall.id)
            notification = None

        return FallAlert(fall=fall, notification=notification)
