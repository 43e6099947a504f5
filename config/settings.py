"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # TMDB (metadata only)
    tmdb_api_key: Optional[str] = None
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tmdb_timeout_seconds: float = 10.0
    tmdb_max_attempts: int = 3
    tmdb_backoff_multiplier: float = 2.0

    # VidLink (streaming only)
    vidlink_base_url: str = "https://vidlink.pro"
    # Origin the embedded player posts progress messages from
    player_origin: str = "https://vidlink.pro"

    # Cache settings
    cache_enabled: bool = True
    cache_default_ttl_seconds: int = 3600
    # 0 disables the background sweep (lazy eviction only)
    cache_sweep_interval_seconds: int = 600

    # Rate limiting (requests per window, per client)
    rate_limit_search: int = 10
    rate_limit_streaming: int = 20
    rate_limit_metadata: int = 100
    rate_limit_window_seconds: int = 60

    # Watch progress storage
    progress_database_url: str = "sqlite:///./streamcinema.db"
    continue_watching_max_items: int = 20

    # Runtime
    environment: str = "local"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
