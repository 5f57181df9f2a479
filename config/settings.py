"""
Application settings using Pydantic Settings.
Values come from environment variables or a local .env file.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App Configuration
    APP_ENV: str = "development"
    APP_NAME: str = "Station Call List"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database Logging
    SQL_ECHO: bool = False  # Enable SQL query logging (independent of DEBUG)

    # Database Configuration (any SQLAlchemy sync URL, e.g. postgresql://...)
    DATABASE_URL: str = "sqlite:///./calllist.db"

    # Directory rules
    DEFAULT_PHONE_REGION: str = "US"
    MAX_PHONES_PER_STATION: int = 4
    MIN_MARKET_NUMBER: int = 1
    MAX_MARKET_NUMBER: int = 210
    DEFAULT_FEED: str = "6pm"  # Used when a feed cell matches no known feed

    # Feed import
    IMPORT_ERROR_PREVIEW_LIMIT: int = 10

    @property
    def sync_database_url(self) -> str:
        """
        Return DATABASE_URL in sync driver format.
        Strips async drivers if present so the sync engine can use the URL.
        """
        url = self.DATABASE_URL
        if "+asyncpg" in url:
            url = url.replace("+asyncpg", "")
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url

    @field_validator("DEFAULT_FEED")
    @classmethod
    def validate_default_feed(cls, v: str) -> str:
        """Validate default feed."""
        allowed = ["3pm", "5pm", "6pm"]
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"DEFAULT_FEED must be one of {allowed}, got '{v}'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got '{v}'")
        return v

    @field_validator("MAX_PHONES_PER_STATION")
    @classmethod
    def validate_max_phones(cls, v: int) -> int:
        if not 1 <= v <= 4:
            raise ValueError(f"MAX_PHONES_PER_STATION must be between 1 and 4, got {v}")
        return v


# Global settings instance
settings = Settings()
