"""
tasknest Configuration Settings.

Uses Pydantic Settings for type-safe configuration with environment variable support.

Required environment variables:
- TASKNEST_BACKEND_URL: Base URL of the backend (REST, auth, storage and functions)
- TASKNEST_ANON_KEY: Public anon API key sent with every request

Optional environment variables (with defaults):
- TASKNEST_STORAGE_BUCKET: Attachment bucket name (default: 'subtask-attachments')
- TASKNEST_S3_ENDPOINT: S3-compatible endpoint (default: '<backend>/storage/v1/s3')
- TASKNEST_S3_REGION: S3 region (default: 'us-east-1')
- TASKNEST_S3_ACCESS_KEY / TASKNEST_S3_SECRET_KEY: S3 credentials (required for uploads)
- TASKNEST_MAX_UPLOAD_MB: Maximum attachment size in megabytes (default: 10)
- TASKNEST_CHECK_INTERVAL_MS: Session validation interval (default: 60000)
- TASKNEST_CLEANUP_INTERVAL_MS: Cached credential cleanup interval (default: 172800000)
- TASKNEST_MAX_RETRIES: Failed validations before a forced sign-out (default: 3)
- TASKNEST_STATE_FILE: Durable key-value storage file (default: '~/.tasknest/storage.json')
- TASKNEST_DEBUG: Enable debug logging (default: false)
"""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    # Backend settings
    backend_url: str = Field(default='http://localhost:54321', alias='TASKNEST_BACKEND_URL')
    anon_key: str | None = Field(default=None, alias='TASKNEST_ANON_KEY')

    # Object storage
    storage_bucket: str = Field(default='subtask-attachments', alias='TASKNEST_STORAGE_BUCKET')
    s3_endpoint: str | None = Field(default=None, alias='TASKNEST_S3_ENDPOINT')
    s3_region: str = Field(default='us-east-1', alias='TASKNEST_S3_REGION')
    s3_access_key: str | None = Field(default=None, alias='TASKNEST_S3_ACCESS_KEY')
    s3_secret_key: str | None = Field(default=None, alias='TASKNEST_S3_SECRET_KEY')
    max_upload_mb: int = Field(default=10, alias='TASKNEST_MAX_UPLOAD_MB')

    # Session liveness
    check_interval_ms: int = Field(default=60_000, alias='TASKNEST_CHECK_INTERVAL_MS')
    cleanup_interval_ms: int = Field(default=172_800_000, alias='TASKNEST_CLEANUP_INTERVAL_MS')
    max_retries: int = Field(default=3, alias='TASKNEST_MAX_RETRIES')

    state_file: str = Field(default='~/.tasknest/storage.json', alias='TASKNEST_STATE_FILE')

    # Debug settings
    debug: bool = Field(default=False, alias='TASKNEST_DEBUG')

    @property
    def resolved_s3_endpoint(self) -> str:
        return self.s3_endpoint or f"{self.backend_url.rstrip('/')}/storage/v1/s3"

    @property
    def public_storage_url(self) -> str:
        """Base URL that public objects are served from."""
        return f"{self.backend_url.rstrip('/')}/storage/v1/object/public"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
