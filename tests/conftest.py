"""Shared test fixtures for SAFE telemetry tests."""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("SAFE_TIMEZONE", "Asia/Jakarta")
    monkeypatch.setenv("SAFE_DEFAULT_DEVICE_ID", "SAFE-001")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

JAKARTA = ZoneInfo("Asia/Jakarta")


def at(hour: int, minute: int = 0, second: int = 0, *, day: int = 18) -> datetime:
    """Server-local time on a fixed test day (2026-10-<day>)."""
    return datetime(2026, 10, day, hour, minute, second, tzinfo=JAKARTA)


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def telemetry_db():
    """Create an in-memory TelemetryDatabase for testing."""
    from safe.core.storage.database import TelemetryDatabase

    db = TelemetryDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from safe.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def telemetry_repository(telemetry_db, field_encryptor):
    """Create a TelemetryRepository backed by in-memory SQLite."""
    from safe.core.storage.repository import TelemetryRepository

    return TelemetryRepository(telemetry_db, field_encryptor, timezone=JAKARTA)


@pytest.fixture
def tracker(telemetry_repository):
    from safe.domains.telemetry.domain_logic.activity_tracker import ActivitySessionTracker

    return ActivitySessionTracker(telemetry_repository)


@pytest.fixture
def dispatcher(telemetry_repository):
    from safe.domains.telemetry.ingestion.dispatcher import IngestionDispatcher

    return IngestionDispatcher(telemetry_repository)


@pytest.fixture
def assembler(telemetry_repository):
    from safe.domains.telemetry.domain_logic.snapshot import SnapshotAssembler

    return SnapshotAssembler(telemetry_repository)


def count_rows(repository, table: str) -> int:
    return repository.count_records()[table]
