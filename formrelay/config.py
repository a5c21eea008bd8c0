"""
Configuration management for formrelay.

Uses pydantic-settings for environment variable management. One instance is
built at process start and handed to every component; the admin layer may
change fields on it at runtime, and components read them at call time.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings loaded from FORMRELAY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FORMRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
    )

    # Database
    DATABASE_URL: str = "sqlite:///./formrelay.db"
    DATABASE_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    # Audit trail
    LOGGING_ENABLED: bool = True
    LOG_RETENTION_DAYS: int = 30

    # Manual retries
    MAX_MANUAL_RETRIES: int = 3
    MAX_RETRIES_PER_HOUR: int = 10

    # Extra field-name patterns, merged with the built-in redaction defaults
    SENSITIVE_PATTERNS: list[str] = [
        "password", "token", "secret", "api_key", "apikey", "api-key",
    ]

    # Delivery
    DEFAULT_TIMEOUT: float = 30.0

    # Error-rate alerts
    ALERTS_ENABLED: bool = False
    ALERT_ERROR_THRESHOLD: int = 10
    ALERT_RATE_THRESHOLD: float = 20.0  # percent
    ALERT_COOLDOWN_HOURS: int = 4
