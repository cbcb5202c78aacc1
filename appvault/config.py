"""
Configuration settings for AppVault.

Uses Pydantic Settings to load environment variables for the store backend,
database connections, asset hosting, logging, and probe timeouts.
"""
from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("appvault", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(4, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Catalog store
    store_backend: str = Field("postgres", alias="STORE_BACKEND")
    collection_name: str = Field("apps", alias="COLLECTION_NAME")
    asset_namespace: str = Field("app-previews", alias="ASSET_NAMESPACE")
    asset_base_url: str = Field("http://localhost:8080/assets", alias="ASSET_BASE_URL")

    # Timeouts
    probe_timeout_seconds: float = Field(15.0, alias="PROBE_TIMEOUT_SECONDS")
    ready_timeout_seconds: float = Field(10.0, alias="READY_TIMEOUT_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
