"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Cadence configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/cadence.db"))

    # Hosted database REST interface (workspace data for reports and tasks)
    data_api_url: str = Field(default="")
    data_api_key: str = Field(default="")

    # Generated report files
    artifacts_dir: Path = Field(default=Path("data/reports"))

    # Scheduler
    scheduler_timezone: str = Field(default="UTC")
    scan_interval_minutes: int = Field(default=15, ge=1)
    scan_max_concurrency: int = Field(default=10, ge=1)
    generation_timeout_seconds: float = Field(default=60.0, gt=0)
    notification_timeout_seconds: float = Field(default=30.0, gt=0)
    occurrence_hour: int = Field(default=9, ge=0, le=23)

    # Reject unknown frequencies when a schedule is created. Rows already in
    # the database with an unknown value still fall back to weekly.
    strict_frequency: bool = Field(default=True)

    # Trigger endpoint
    trigger_port: int = Field(default=8480)
    trigger_secret: str = Field(default="")

    # Email (Resend)
    resend_api_key: str = Field(default="")
    email_from: str = Field(default="reports@example.com")

    # Notifications
    default_notification_channel: str = Field(default="log")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


settings = Settings()
