"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "placement_user"
    postgres_password: str = "password"
    postgres_db: str = "placement_db"
    # Full URL override (e.g. managed Postgres); wins over the fields above
    database_url: Optional[str] = None

    # External asset host (S3-compatible: Cloudflare R2 / AWS S3)
    asset_host_endpoint_url: Optional[str] = None
    asset_host_access_key: Optional[str] = None
    asset_host_secret_key: Optional[str] = None
    asset_host_bucket: Optional[str] = None
    asset_cleanup_batch_size: int = 100

    # JWT Auth
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # Academic-year reset
    reset_statement_timeout_ms: int = 120000

    # App
    debug: bool = False
    log_level: str = "INFO"

    @property
    def postgres_url(self) -> str:
        """Construct PostgreSQL connection URL"""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def asset_host_configured(self) -> bool:
        return bool(self.asset_host_bucket)

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
