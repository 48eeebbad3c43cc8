"""Tests for fall severity classification and the fall notification path."""

from __future__ import annotations

import pytest
from conftest import at

from safe.core.storage.models import Device
from safe.core.storage.repository import PersistenceError
from safe.domains.telemetry.domain_logic.fall_alerts import (
    FallAlertService,
    FallNotifier,
    classify_severity,
)


class TestClassifySeverity:
    @pytest.mark.parametrize(
        "confidence, expected",
        [
            (1.0, "high"),
            (0.95, "high"),
            (0.90, "high"),
            (0.8999, "medium"),
            (0.70, "medium"),
            (0.6999, "low"),
            (0.0, "low"),
        ],
    )
    def test_tiers(self, confidence, expected):
        assert classify_severity(confidence) == expected


class TestRecordFall:
    def test_high_confidence_fall_without_contact(self, telemetry_repository):
        service = FallAlertService(telemetry_repository)
        alert = service.record_fall("SAFE-001", 0.95, latitude=-7.25, longitude=112.76, now=at(9))

        assert alert.fall.severity == "high"
        assert alert.fall.status == "detected"
        assert alert.as_dict() == {"fall_id": alert.fall.id, "severity": "high", "notification_sent": True}

        critical = telemetry_repository.get_system_logs(device_id="SAFE-001", level="critical")
        assert len(critical) == 1
        assert "0.95" in critical[0].message

        notifications = telemetry_repository.get_notification_logs(alert.fall.id)
        assert len(notifications) == 1
        assert notifications[0].recipient == "unknown"
        assert notifications[0].notification_type == "push"
        assert notifications[0].status == "sent"

    def test_notification_uses_emergency_contact(self, telemetry_repository):
        telemetry_repository.upsert_device(Device(device_id="SAFE-001", emergency_contact="+62 811 222"))
        alert = FallAlertService(telemetry_repository).record_fall("SAFE-001", 0.75, now=at(9))

        assert alert.fall.severity == "medium"
        assert alert.notification.recipient == "+62 811 222"

    def test_registered_device_without_contact_gets_unknown(self, telemetry_repository):
        telemetry_repository.upsert_device(Device(device_id="SAFE-001", name="Siti"))
        alert = FallAlertService(telemetry_repository).record_fall("SAFE-001", 0.5, now=at(9))
        assert alert.notification.recipient == "unknown"

    def test_notification_failure_keeps_fall_event(self, telemetry_repository):
        class BrokenNotifier(FallNotifier):
            def notify(self, fall):
                raise PersistenceError("notification table unavailable")

        service = FallAlertService(telemetry_repository, BrokenNotifier(telemetry_repository))
        alert = service.record_fall("SAFE-001", 0.95, now=at(9))

        assert alert.notification_sent is False
        falls = telemetry_repository.get_falls_on("SAFE-001", at(9).date())
        assert [f.id for f in falls] == [alert.fall.id]

    def test_contact_lookup_failure_falls_back_to_unknown(self, telemetry_repository, monkeypatch):
        def broken_lookup(device_id):
            raise PersistenceError("profile unreadable")

        monkeypatch.setattr(telemetry_repository, "get_device", broken_lookup)
        alert = FallAlertService(telemetry_repository).record_fall("SAFE-001", 0.95, now=at(9))
        assert alert.notification.recipient == "unknown"
