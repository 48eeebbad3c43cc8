"""Tests for TelemetryDatabase schema creation and versioning."""

from __future__ import annotations

import sqlite3

import pytest

from safe.core.storage.database import SCHEMA_VERSION, DatabaseError, TelemetryDatabase


class TestInitialization:
    def test_in_memory_initialize(self):
        db = TelemetryDatabase(":memory:")
        db.initialize()
        assert db.connection is not None
        db.close()

    def test_double_initialize_is_idempotent(self):
        db = TelemetryDatabase(":memory:")
        db.initialize()
        conn1 = db.connection
        db.initialize()
        assert db.connection is conn1
        db.close()

    def test_connection_before_init_raises(self):
        db = TelemetryDatabase(":memory:")
        with pytest.raises(DatabaseError, match="not initialized"):
            _ = db.connection

    def test_context_manager(self):
        with TelemetryDatabase(":memory:") as db:
            assert db.connection is not None
        with pytest.raises(DatabaseError):
            _ = db.connection


class TestSchema:
    def test_schema_version_recorded(self):
        with TelemetryDatabase(":memory:") as db:
            assert db.get_schema_version() == SCHEMA_VERSION

    def test_tables_created(self):
        expected_tables = {
            "devices",
            "sensor_data",
            "gps_tracking",
            "fall_events",
            "daily_activities",
            "obstacle_detections",
            "notification_logs",
            "system_logs",
            "schema_version",
        }
        with TelemetryDatabase(":memory:") as db:
            cursor = db.connection.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            tables = {row[0] for row in cursor.fetchall()}
            assert expected_tables <= tables

    def test_indexes_created(self):
        expected_indexes = {
            "idx_sensor_device_ts",
            "idx_gps_device_ts",
            "idx_falls_device_ts",
            "idx_activities_device",
            "idx_obstacles_device_ts",
            "idx_notifications_fall",
            "idx_syslogs_device_ts",
            "idx_activities_one_open",
        }
        with TelemetryDatabase(":memory:") as db:
            cursor = db.connection.execute("SELECT name FROM sqlite_master WHERE type='index'")
            indexes = {row[0] for row in cursor.fetchall()}
            for idx in expected_indexes:
                assert idx in indexes, f"Missing index: {idx}"

    def test_second_open_interval_rejected_by_storage(self):
        with TelemetryDatabase(":memory:") as db:
            conn = db.connection
            conn.execute(
                "INSERT INTO daily_activities (device_id, activity_type, start_time) VALUES (?, ?, ?)",
                ("SAFE-001", "walking", "2026-10-18T09:00:00+07:00"),
            )
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO daily_activities (device_id, activity_type, start_time) VALUES (?, ?, ?)",
                    ("SAFE-001", "sitting", "2026-10-18T09:05:00+07:00"),
                )

    def test_open_intervals_on_different_devices_allowed(self):
        with TelemetryDatabase(":memory:") as db:
            conn = db.connection
            for device in ("SAFE-001", "SAFE-002"):
                conn.execute(
                    "INSERT INTO daily_activities (device_id, activity_type, start_time) VALUES (?, ?, ?)",
                    (device, "walking", "2026-10-18T09:00:00+07:00"),
                )
            count = conn.execute("SELECT COUNT(*) FROM daily_activities").fetchone()[0]
            assert count == 2

    def test_foreign_keys_enabled(self):
        with TelemetryDatabase(":memory:") as db:
            cursor = db.connection.execute("PRAGMA foreign_keys")
            assert cursor.fetchone()[0] == 1


class TestFileDatabase:
    def test_creates_parent_directories(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "telemetry.db"
        db = TelemetryDatabase(str(db_path))
        db.initialize()
        assert db_path.exists()
        assert db.get_schema_version() == SCHEMA_VERSION
        db.close()

    def test_reopen_keeps_single_version_row(self, tmp_path):
        db_path = str(tmp_path / "telemetry.db")
        with TelemetryDatabase(db_path):
            pass
        with TelemetryDatabase(db_path) as db:
            rows = db.connection.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
            assert rows == 1
            assert db.get_schema_version() == SCHEMA_VERSION


class TestClose:
    def test_close_makes_connection_unavailable(self):
        db = TelemetryDatabase(":memory:")
        db.initialize()
        db.close()
        with pytest.raises(DatabaseError, match="not initialized"):
            _ = db.connection

    def test_double_close_is_safe(self):
        db = TelemetryDatabase(":memory:")
        db.initialize()
        db.close()
        db.close()
