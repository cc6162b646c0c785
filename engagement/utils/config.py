# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="engagement", description="Database name")
    schema_name: str = Field(default="engagement", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) connection settings for sweep history."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class SpotifySettings(BaseSettings):
    """Streaming API client settings."""

    model_config = SettingsConfigDict(env_prefix="SPOTIFY_")

    client_id: str = Field(default="", description="OAuth client ID")
    client_secret: str = Field(default="", description="OAuth client secret")
    api_base: str = Field(default="https://api.spotify.com/v1", description="Web API base URL")
    accounts_base: str = Field(
        default="https://accounts.spotify.com", description="Accounts service base URL"
    )
    request_timeout_seconds: float = Field(
        default=10.0, description="Timeout for each upstream request in seconds"
    )
    recently_played_limit: int = Field(
        default=50, description="Number of recently played items to request per poll"
    )


class EngagementSettings(BaseSettings):
    """Domain tuning for sessions, dedup and day bucketing."""

    model_config = SettingsConfigDict(env_prefix="ENGAGEMENT_")

    timezone: str = Field(
        default="Europe/Copenhagen", description="Audience timezone used for day keys"
    )
    session_gap_minutes: int = Field(
        default=30, description="Maximum gap between plays in one listening session"
    )
    super_listener_threshold: int = Field(
        default=15, description="Tracks in a session or day that make a super listener"
    )
    dedup_tolerance_minutes: int = Field(
        default=5, description="Timestamp tolerance when matching an already recorded play"
    )
    retention_days: int = Field(
        default=45, description="Days a connection stays active after joining"
    )


class SweepSettings(BaseSettings):
    """Ingestion sweep settings."""

    model_config = SettingsConfigDict(env_prefix="SWEEP_")

    cron_key: Optional[str] = Field(
        default=None, description="Shared secret required to trigger a sweep"
    )
    workers: int = Field(default=1, description="Connections processed concurrently")
    history_ttl_hours: int = Field(
        default=168, description="How long sweep summaries are kept in Valkey"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    engagement: EngagementSettings = Field(default_factory=EngagementSettings)
    sweep: SweepSettings = Field(default_factory=SweepSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
