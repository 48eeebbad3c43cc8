"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """SAFE telemetry server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback; there is no auth layer in front of the ingestion routes.
    safe_host: str = "127.0.0.1"
    safe_port: int = 8001
    safe_log_level: str = "info"
    # If binding to non-loopback, refuse to start unless this is set true.
    safe_allow_insecure_bind: bool = False
    safe_cors_allow_origins: list[str] = ["*"]

    # Server-local clock: "today" for dashboard queries is evaluated in this zone
    safe_timezone: str = "Asia/Jakarta"

    # Applied only when a dashboard query omits device_id
    safe_default_device_id: str = "SAFE-001"

    # Storage
    db_path: str = "~/.safe/telemetry.db"

    # Encryption of device profile fields (emergency contact, medical condition)
    encryption_key: str = ""

    # Diagnostic thresholds
    low_battery_threshold: int = 20
    near_obstacle_distance_m: float = 1.0


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
