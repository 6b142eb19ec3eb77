"""Process configuration loaded from the environment."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tenantmigrate.models import MigrationConfig


class MigrationSettings(BaseSettings):
    """Worker settings loaded from TENANTMIGRATE_* environment variables or .env."""

    model_config = SettingsConfigDict(
        env_prefix="TENANTMIGRATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Source and destination of queued migrations
    from_alias: str = ""
    from_region: str = ""
    to_region: str = ""
    to_alias: str = ""  # empty: create a new portal

    # Stores
    database_url: str = "sqlite+aiosqlite:///tenantmigrate.db"  # default region
    region_database_urls: dict[str, str] = Field(default_factory=dict)
    storage_root: str = "./data/storage"
    work_dir: str = "./data/backups"
    echo_sql: bool = False

    # Worker
    poll_interval_seconds: float = 300.0
    log_level: str = "INFO"
    enable_tracing: bool = False

    # Migration tuning
    page_size: int = 1000
    discovery_concurrency: int = 20
    file_copy_attempts: int = 5
    table_restore_attempts: int = 5
    retry_delay_seconds: float = 0.5
    query_timeout_seconds: float = 600.0
    alias_min_length: int = 3
    alias_max_length: int = 100
    alias_prefix: str = "portal"

    def to_config(self) -> MigrationConfig:
        """Build the immutable per-run configuration."""
        return MigrationConfig(
            page_size=self.page_size,
            discovery_concurrency=self.discovery_concurrency,
            file_copy_attempts=self.file_copy_attempts,
            table_restore_attempts=self.table_restore_attempts,
            retry_delay_seconds=self.retry_delay_seconds,
            query_timeout_seconds=self.query_timeout_seconds,
            alias_min_length=self.alias_min_length,
            alias_max_length=self.alias_max_length,
            alias_prefix=self.alias_prefix,
        )

    def region_urls(self) -> dict[str, str]:
        """Database URL per region; the empty name is the default region."""
        return {"": self.database_url, **self.region_database_urls}


@lru_cache
def get_settings() -> MigrationSettings:
    """Get cached settings instance."""
    return MigrationSettings()


__all__ = ["MigrationSettings", "get_settings"]
