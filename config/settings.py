"""
Configuration settings for the Balances Webhook Ingest service.
"""
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Configuration
    app_name: str = "Balances Webhook Ingest"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    log_json: bool = False

    # Database Configuration
    database_url: str = "sqlite:///balances.db"

    # Webhook security
    webhook_secret: str = ""  # Bearer token expected from webhook senders
    admin_api_key: Optional[str] = None  # X-API-Key for source/parse-error management

    # Envelope limits
    sms_max_payload_bytes: int = 10_000
    structured_max_payload_bytes: int = 20_000
    sms_max_request_age_minutes: int = 5
    structured_max_request_age_minutes: int = 10

    # Best-effort rate limiting, per client address
    rate_limit_max_requests: int = 100
    rate_limit_window_seconds: int = 60

    # Transactions
    default_currency: str = "COP"
    sms_source_value: str = "bancolombia-sms"  # Fixed source for free-text SMS transactions

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """SQLAlchemy rejects the legacy postgres:// scheme."""
        if v and v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator(
        "sms_max_payload_bytes",
        "structured_max_payload_bytes",
        "sms_max_request_age_minutes",
        "structured_max_request_age_minutes",
        "rate_limit_max_requests",
        "rate_limit_window_seconds",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v


# Create settings instance
settings = Settings()
