"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Tale Forge Offline"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Local store (on-device database)
    local_database_url: str = "sqlite+aiosqlite:///./taleforge_offline.db"
    local_database_echo: bool = False

    # Supabase (remote backend)
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Sync coordinator
    sync_conflict_strategy: str = "timestamp_based"
    sync_auto_on_reconnect: bool = True
    sync_reconnect_delay_seconds: float = 2.0
    sync_max_batch_size: int = 50

    # Operation queue retry policy
    queue_auto_retry: bool = False
    queue_max_retry_attempts: int = 5
    queue_base_retry_delay_seconds: float = 1.0
    queue_max_retry_delay_seconds: float = 60.0

    # Network monitor
    heartbeat_url: str = ""
    heartbeat_interval_seconds: float = 30.0
    heartbeat_timeout_seconds: float = 5.0

    # Media URL cache
    media_cache_ttl_seconds: int = 3600
    media_cache_max_entries: int = 500

    @property
    def async_local_database_url(self) -> str:
        """Ensure the local database URL uses the aiosqlite driver."""
        url = self.local_database_url
        if url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @property
    def effective_heartbeat_url(self) -> str:
        """Heartbeat target (prefers heartbeat_url, falls back to the Supabase health endpoint)."""
        if self.heartbeat_url:
            return self.heartbeat_url
        if self.supabase_url:
            return f"{self.supabase_url.rstrip('/')}/auth/v1/health"
        return ""

    def has_supabase_config(self) -> bool:
        """Check if the Supabase anon client can be created."""
        return bool(self.supabase_url and self.supabase_anon_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
