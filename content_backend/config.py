"""
Configuration and settings for the content backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from content_backend.assets import AssetKind

MB = 1024 * 1024


def _split_csv(value):
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    service_title: str = Field(default="Greenhall Content Backend API")
    enabled_sites: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["portfolio", "marketing", "nonprofit"]
    )
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["*"]
    )

    # Document store (any SQLAlchemy URL; unset means in-memory)
    database_url: Optional[str] = Field(default=None)
    # Abort startup when the database cannot be reached, instead of serving 503s.
    database_required: bool = Field(default=True)

    # S3-compatible media storage
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    media_public_base_url: Optional[str] = Field(default=None)
    media_namespace_root: str = Field(default="greenhall")

    image_max_bytes: int = Field(default=10 * MB, gt=0)
    video_max_bytes: int = Field(default=100 * MB, gt=0)
    document_max_bytes: int = Field(default=50 * MB, gt=0)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Server entry point
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5001)
    log_level: str = Field(default="INFO")

    @field_validator("enabled_sites", "cors_allow_origins", mode="before")
    @classmethod
    def _parse_csv(cls, value):
        return _split_csv(value)

    def max_bytes_for(self, kind: AssetKind) -> int:
        return {
            AssetKind.IMAGE: self.image_max_bytes,
            AssetKind.VIDEO: self.video_max_bytes,
            AssetKind.DOCUMENT: self.document_max_bytes,
        }[kind]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
