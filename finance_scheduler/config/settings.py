"""
Configuration Management for Finance Scheduler

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Execution engine and query configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    upcoming_horizon_days: int = Field(
        default=3,
        ge=0,
        le=366,
        description="Default look-ahead window for upcoming transactions"
    )
    gateway_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single balance/notification gateway call"
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Schedules processed in parallel within one run"
    )

    # Notification delivery is fire-and-forget, but gets a few quick retries
    notification_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Delivery attempts per notification"
    )
    notification_retry_wait_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Base wait between notification delivery attempts"
    )

    default_page_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Page size for schedule listings"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for each Sheets API request"
    )

    # Sheet names within the spreadsheet
    schedules_sheet_name: str = Field(
        default="ScheduledTransactions",
        description="Name of the sheet for recurring schedules"
    )
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for materialized transactions"
    )
    accounts_sheet_name: str = Field(
        default="Accounts",
        description="Name of the sheet holding account balances"
    )
    notifications_sheet_name: str = Field(
        default="Notifications",
        description="Name of the sheet for user notifications"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the scheduler."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level for structured logs"
    )

    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Where schedules, transactions and balances live"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def scheduler(self) -> SchedulerSettings:
        return SchedulerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("scheduler", "google_sheets", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
