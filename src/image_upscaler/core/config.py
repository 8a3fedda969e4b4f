"""
Environment-driven configuration for the image upscaler.

Operational settings live here so the stages only see plain values.
Per-batch choices (resize bound, upscaling target, name prefix) are not
configuration; they travel with each run as ``ProcessingSettings``.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sizing import MAX_FILE_SIZE_BYTES

REAL_ESRGAN_VERSION = "f121d640bd286e1fdc67f9799164c1d5be36ff74576ee11c803ae5b665dd46aa"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="UPSCALER_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Upscaling provider
    replicate_api_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("REPLICATE_API_TOKEN", "replicate_api_token"),
    )
    replicate_api_url: str = "https://api.replicate.com/v1/predictions"
    replicate_model_version: str = REAL_ESRGAN_VERSION
    provider_max_scale: float = Field(4.0, gt=1.0)
    provider_timeout_seconds: float = Field(120.0, gt=0)
    provider_poll_interval_seconds: float = Field(1.0, gt=0)
    provider_max_attempts: int = Field(2, ge=1)
    provider_retry_delay_seconds: float = Field(1.0, ge=0)

    # Artifact storage
    storage_backend: str = "local"
    artifact_dir: Path = Path("processed")
    public_base_url: str = "/api/serve-image"
    s3_bucket: Optional[str] = None
    s3_prefix: str = "processed/"
    s3_endpoint_url: Optional[str] = None
    s3_public_base_url: Optional[str] = None
    s3_url_expiry_seconds: int = Field(3600, gt=0)

    # Lifecycle
    cleanup_delay_seconds: float = Field(5.0, ge=0)
    orphan_ttl_seconds: float = Field(3600.0, ge=0)

    # Batch
    concurrency: int = Field(1, ge=1)
    max_file_size_bytes: int = Field(MAX_FILE_SIZE_BYTES, gt=0)

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in {"local", "s3"}:
            raise ValueError("UPSCALER_STORAGE_BACKEND must be one of local|s3")
        return v


@lru_cache()
def get_settings() -> AppSettings:
    """Return cached settings to avoid reparsing env on every call."""
    return AppSettings()
