"""Exceptions raised by the telemetry ingestion and query paths."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for telemetry errors that map onto a failure envelope."""

    status_code = 500


class ValidationError(TelemetryError):
    """Malformed, missing, or out-of-domain input. Nothing was written."""

    status_code = 400


class ProcessingError(TelemetryError):
    """A handler failed after validation; the failure was recorded in system_logs."""

    status_code = 500

    def __init__(self, message: str, *, data_type: str = "", device_id: str = "") -> None:
        super().__init__(message)
        self.data_type = data_type
        self.device_id = device_id
