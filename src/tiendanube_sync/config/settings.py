"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration."""

    # Tiendanube API Configuration
    tiendanube_app_secret: Optional[str] = None
    tiendanube_access_token: Optional[str] = None
    tiendanube_user_id: Optional[int] = None
    tiendanube_user_agent: str = "TiendanubeSync/1.0"
    tiendanube_api_base: str = "https://api.tiendanube.com/2025-03"
    tokens_file: str = "config/tiendanube_tokens.json"

    # Upstream behaviour
    upstream_timeout_seconds: float = 15.0
    products_page_size: int = 50
    orders_page_size: int = 100

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    environment: str = "development"

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./tiendanube_sync.db"

    # Redis (sync lock + sync history)
    redis_enabled: bool = False
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0
    sync_lock_timeout_seconds: int = 1800

    # Scheduled synchronization
    scheduled_sync_enabled: bool = False
    daily_sync_hour: int = 3
    sync_store_ids: List[int] = []

    # GlitchTip Error Monitoring
    glitchtip_dsn: Optional[str] = None

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create a global settings instance
settings = Settings()
