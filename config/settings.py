"""Configuration management using pydantic-settings."""
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (reference data, campaign notes and durable cache snapshots)
    database_url: str = "sqlite:///./grimoire.db"

    # Durable cache storage: "sql" persists snapshots in the database,
    # "memory" keeps them for the lifetime of the process only
    cache_storage_backend: Literal["sql", "memory"] = "sql"

    # Freshness window overrides; unset fields fall back to the defaults in
    # grimoire.cache.ttl_policies.TTL_CONFIG
    races_cache_ttl_seconds: Optional[int] = None
    wiki_cache_ttl_seconds: Optional[int] = None
    class_features_cache_ttl_seconds: Optional[int] = None
    campaign_notes_cache_ttl_seconds: Optional[int] = None
    campaign_notes_stale_seconds: Optional[int] = None

    # Background refresh period while campaign notes are stale; unset means
    # STALE_REFRESH_INTERVAL_SECONDS
    campaign_notes_refresh_interval_seconds: Optional[float] = None

    # Coalesce concurrent cold loads of the race name map into one fetch
    races_single_flight: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
