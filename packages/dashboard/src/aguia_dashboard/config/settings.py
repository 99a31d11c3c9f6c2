"""Configuration settings for the Águia financial dashboard."""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

Direction = Literal["forward", "backward"]


class Settings(BaseSettings):
    """Flat settings read from environment variables (or a local .env)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hosted backend (PostgREST interface)
    supabase_url: str = Field(
        default="http://localhost:54321", validation_alias="SUPABASE_URL"
    )
    supabase_key: SecretStr = Field(..., validation_alias="SUPABASE_KEY")
    supabase_timeout: float = Field(default=30.0, validation_alias="SUPABASE_TIMEOUT")
    supabase_max_retries: int = Field(default=3, validation_alias="SUPABASE_MAX_RETRIES")

    # Business calendar
    holiday_cache_ttl_seconds: float = Field(
        default=3600.0, validation_alias="HOLIDAY_CACHE_TTL_SECONDS"
    )
    business_timezone: str = Field(
        default="America/Sao_Paulo", validation_alias="BUSINESS_TIMEZONE"
    )
    # Payment dates are recorded on the next bank day; due dates move earlier
    payment_date_direction: Direction = Field(
        default="forward", validation_alias="PAYMENT_DATE_DIRECTION"
    )
    due_date_direction: Direction = Field(
        default="backward", validation_alias="DUE_DATE_DIRECTION"
    )

    # Feature flags
    enable_conciliacao: bool = Field(default=True, validation_alias="ENABLE_CONCILIACAO")
    admin_emails: Annotated[list[str], NoDecode] = Field(
        default_factory=list, validation_alias="ADMIN_EMAILS"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @field_validator("admin_emails", mode="before")
    @classmethod
    def _split_emails(cls, value: object) -> object:
        if isinstance(value, str):
            return [email.strip() for email in value.split(",") if email.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def is_conciliacao_enabled() -> bool:
    return get_settings().enable_conciliacao


def is_admin_email(email: str) -> bool:
    return email.strip().lower() in {e.lower() for e in get_settings().admin_emails}
