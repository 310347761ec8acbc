"""
Configuration and settings for the admin backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # "development" turns on stack traces in error responses.
    environment: str = Field(
        default="production",
        validation_alias=AliasChoices("NODE_ENV", "ENVIRONMENT"),
    )

    # Database (Postgres expected)
    database_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "POSTGRES_URL"),
    )
    db_pool_size: int = Field(default=20, validation_alias="DB_POOL_SIZE")
    db_pool_timeout: float = Field(default=5.0, validation_alias="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=1800, validation_alias="DB_POOL_RECYCLE")

    # Token signing
    jwt_secret: str = Field(default="change-me", validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_hours: int = Field(default=24, validation_alias="JWT_EXPIRES_HOURS")

    # S3-compatible blob storage
    blob_bucket: Optional[str] = Field(default=None, validation_alias="BLOB_BUCKET")
    blob_endpoint: Optional[str] = Field(default=None, validation_alias="BLOB_ENDPOINT")
    blob_region: Optional[str] = Field(default=None, validation_alias="BLOB_REGION")
    blob_public_base_url: Optional[str] = Field(
        default=None, validation_alias="BLOB_PUBLIC_BASE_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias="AWS_SECRET_ACCESS_KEY"
    )

    # Blob cleanup queue (Redis)
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    redis_cleanup_key: str = Field(
        default="siteadmin:blob-cleanup", validation_alias="REDIS_CLEANUP_KEY"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="SITEADMIN_USE_IN_MEMORY_BACKENDS"
    )

    # Comma separated list of allowed browser origins.
    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="CORS_ORIGINS",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [i.strip() for i in self.cors_origins.split(",") if i.strip()]

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
