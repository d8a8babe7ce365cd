"""
Configuration settings for the warehouse features demo.

Uses Pydantic Settings to load environment variables for the database
connection, logging, pipeline timing, and alert notification defaults.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

FailurePolicy = Literal["fail_fast", "collect"]


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("sf_de_features", alias="DB_NAME")
    db_schema: str = Field("de_sch", alias="DB_SCHEMA")
    db_maintenance_name: str = Field("postgres", alias="DB_MAINTENANCE_NAME")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    results_dir: str = Field("results", alias="RESULTS_DIR")

    # Pipelines
    worker_latency_seconds: float = Field(30.0, alias="WORKER_LATENCY_SECONDS", ge=0)
    await_timeout_seconds: float = Field(300.0, alias="AWAIT_TIMEOUT_SECONDS", gt=0)
    failure_policy: FailurePolicy = Field("fail_fast", alias="FAILURE_POLICY")

    # Alerts
    alert_interval_seconds: int = Field(60, alias="ALERT_INTERVAL_SECONDS", gt=0)
    notification_channel: str = Field("my_email_integration", alias="NOTIFICATION_CHANNEL")
    alert_recipients: str = Field("data-ops@example.com", alias="ALERT_RECIPIENTS")
    notification_sink: Literal["log", "smtp"] = Field("log", alias="NOTIFICATION_SINK")
    smtp_host: str = Field("localhost", alias="SMTP_HOST")
    smtp_port: int = Field(25, alias="SMTP_PORT")
    smtp_sender: str = Field("alerts@example.com", alias="SMTP_SENDER")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def recipients(self) -> List[str]:
        """Alert recipients parsed from the comma-separated setting."""
        return [r.strip() for r in self.alert_recipients.split(",") if r.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["FailurePolicy", "Settings", "get_settings"]
