from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

ROOT_DIR = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "APIWATCH_",
        "extra": "ignore",
    }

    # Monitored API
    api_base_url: str = "http://127.0.0.1:3000/api"
    login_path: str = "/auth/login"
    probe_email: str = "admin@example.com"
    probe_password: str = ""

    # Probe cycle
    probe_interval_seconds: int = 300  # every 5 minutes
    probe_timeout_seconds: float = 10.0
    probe_workers: int = 4

    # Retention (days): overridable at runtime via the settings table
    health_check_retention_days: int = 7
    error_retention_days: int = 30

    # Daily jobs, UTC wall-clock "HH:MM"
    check_retention_time: str = "02:00"
    error_retention_time: str = "03:00"
    error_report_time: str = "08:00"
    scheduler_enabled: bool = True

    # Size of recent-failures / recent-errors lists
    recent_list_size: int = 10

    # Storage + registry
    db_path: Path = ROOT_DIR / "data" / "apiwatch.db"
    registry_path: Path = ROOT_DIR / "endpoints.yaml"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    environment: str = "development"  # "production" hides error details

    # Logging
    log_level: str = "INFO"

    # Notifications (optional: Slack / Telegram)
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""


settings = Settings()
