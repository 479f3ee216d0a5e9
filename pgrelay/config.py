"""Application configuration using pydantic-settings.

Values are loaded from a .env file or the environment. Connection fields left
unset fall back to the driver's own libpq environment variables.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # PostgreSQL connection; CLI flags take precedence
    postgres_host: str | None = Field(default=None, description="PostgreSQL host or socket directory")
    postgres_port: int | None = Field(default=None, description="PostgreSQL port")
    postgres_user: str | None = Field(default=None, description="PostgreSQL user")
    postgres_password: str | None = Field(default=None, description="PostgreSQL password")
    postgres_db: str | None = Field(default=None, description="PostgreSQL database name")

    # Event loop
    probe_interval_s: float = Field(default=300.0, description="Keep-alive probe interval in seconds")
    default_channel: str = Field(default="pglater", description="Channel pglater listens on by default")

    # Application settings
    log_level: str = Field(default="WARNING", description="Logging level when --verbose is not given")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Loaded lazily on first access so importing the package never reads the
    environment.
    """
    return Settings()
