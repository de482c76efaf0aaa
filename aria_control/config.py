"""ARIA Control Plane — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class AriaSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "ARIA_",
        "extra": "ignore",
    }

    # ── Program ────────────────────────────────────────────────
    program_id: str = "AriaCtrl1111111111111111111111111111111111"

    # ── Record store / event journal ───────────────────────────
    database_url: str = "sqlite:///aria_control.db"
    database_echo: bool = False

    # ── Custody service ────────────────────────────────────────
    custody_base_url: str = "http://localhost:8900"
    custody_api_key: str = ""
    custody_timeout_seconds: float = 10.0

    # ── Dashboard ──────────────────────────────────────────────
    dashboard_host: str = "0.0.0.0"
    dashboard_port: int = 8000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = AriaSettings()
