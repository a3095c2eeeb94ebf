from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Database settings are optional: when any of the MySQL values is missing the
    database layer falls back to a local SQLite file.
    """

    app_name: str = Field(default="Case Sync", validation_alias="APP_NAME")
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    database_host: str | None = Field(default=None, validation_alias="DB_HOST")
    database_user: str | None = Field(default=None, validation_alias="DB_USER")
    database_password: str | None = Field(default=None, validation_alias="DB_PASSWORD")
    database_name: str | None = Field(default=None, validation_alias="DB_NAME")
    migration_lock_timeout: int = Field(
        default=60, validation_alias="MIGRATION_LOCK_TIMEOUT"
    )
    clickup_api_base_url: AnyHttpUrl = Field(
        default="https://api.clickup.com/api/v2",
        validation_alias="CLICKUP_API_BASE_URL",
    )
    clickup_api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CLICKUP_API_TOKEN", "CLICKUP_TOKEN"),
    )
    clickup_webhook_secret: str | None = Field(
        default=None, validation_alias="CLICKUP_WEBHOOK_SECRET"
    )
    clickup_private_list_id: str = Field(
        default="901204857438", validation_alias="CLICKUP_PRIVATE_LIST_ID"
    )
    clickup_business_list_id: str = Field(
        default="901204857574", validation_alias="CLICKUP_BUSINESS_LIST_ID"
    )
    clickup_rate_limit_per_minute: int = Field(
        default=100, validation_alias="CLICKUP_RATE_LIMIT_PER_MINUTE"
    )
    clickup_request_timeout: float = Field(
        default=15.0, validation_alias="CLICKUP_REQUEST_TIMEOUT"
    )
    import_page_delay_seconds: float = Field(
        default=0.1, validation_alias="IMPORT_PAGE_DELAY_SECONDS"
    )
    import_default_page_size: int = Field(
        default=50, validation_alias="IMPORT_DEFAULT_PAGE_SIZE"
    )
    commission_policy: str = Field(
        default="transition_only", validation_alias="COMMISSION_POLICY"
    )
    default_timezone: str = Field(
        default="UTC",
        validation_alias=AliasChoices("SYNC_TIMEZONE", "CRON_TIMEZONE"),
    )
    default_start_hour: int = Field(
        default=8, ge=0, le=23, validation_alias="DEFAULT_START_HOUR"
    )
    expose_error_details: bool = Field(
        default=False, validation_alias="EXPOSE_ERROR_DETAILS"
    )
    sync_log_path: Path | None = Field(
        default=None,
        validation_alias="SYNC_LOG_PATH",
    )

    @field_validator(
        "database_host",
        "database_user",
        "database_password",
        "database_name",
        "clickup_api_token",
        "clickup_webhook_secret",
        "sync_log_path",
        mode="before",
    )
    @classmethod
    def _empty_string_to_none(cls, value):  # type: ignore[override]
        """Coerce blank environment variables to ``None`` so optional values stay optional."""

        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("commission_policy", mode="before")
    @classmethod
    def _normalise_policy(cls, value):
        if value is None:
            return "transition_only"
        return str(value).strip().lower() or "transition_only"

    model_config = SettingsConfigDict(
        env_file=(Path(__file__).resolve().parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
