from __future__ import annotations

from datetime import tzinfo
from typing import Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.constants import DB_SCHEMA

# Load .env once at module import; all BaseSettings subclasses see the env vars
load_dotenv()


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings. Env vars prefixed with DATABASE_."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "salesdesk"
    schema_: str = Field(DB_SCHEMA, validation_alias="DATABASE_SCHEMA")

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, v: str) -> str:
        if v != DB_SCHEMA:
            msg = f"DATABASE_SCHEMA must be '{DB_SCHEMA}' (got '{v}')"
            raise ValueError(msg)
        return v


class ReminderSettings(BaseSettings):
    """Reminder engine cadence, window and checkpoint. Env vars prefixed with REMINDER_."""

    model_config = SettingsConfigDict(env_prefix="REMINDER_")

    tick_interval_s: float = Field(10.0, gt=0)
    window_minutes: float = Field(5.0, gt=0)
    logout_hour: int = Field(16, ge=0, le=23)
    logout_minute: int = Field(30, ge=0, le=59)
    timezone: str = ""  # empty = system local time
    sound_url: str = "/reminder-notification.mp3"
    notification_title: str = "Reminder"

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, v: str) -> str:
        v = v.strip()
        if not v:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"REMINDER_TIMEZONE is not a known IANA zone (got '{v}')") from e
        return v

    def tz(self) -> tzinfo | None:
        """Resolved zone, or None for system local time."""
        return ZoneInfo(self.timezone) if self.timezone else None


class StorageSettings(BaseSettings):
    """Dismissal ledger store settings. Env vars prefixed with STORAGE_."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: str = "memory"
    poll_interval_s: float = Field(2.0, gt=0)

    @field_validator("backend")
    @classmethod
    def _validate_backend(cls, v: str) -> str:
        allowed = {"memory", "sql"}
        if v not in allowed:
            msg = f"STORAGE_BACKEND must be one of {allowed} (got '{v}')"
            raise ValueError(msg)
        return v


class GatewaySettings(BaseSettings):
    """Gateway server settings. Env vars prefixed with GATEWAY_."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "0.0.0.0"
    port: int = 19790
    log_json: bool = False
    log_level: str = "INFO"


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    reminder: ReminderSettings = Field(default_factory=ReminderSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    @model_validator(mode="after")
    def _validate(self) -> Self:
        # Cross-tab convergence is bounded by one tick only if the store is
        # polled at least as often as the evaluator runs.
        if self.storage.poll_interval_s > self.reminder.tick_interval_s:
            raise ValueError(
                f"STORAGE_POLL_INTERVAL_S ({self.storage.poll_interval_s}) must not exceed "
                f"REMINDER_TICK_INTERVAL_S ({self.reminder.tick_interval_s})"
            )
        return self


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
