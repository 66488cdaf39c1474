from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="TUBELY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for bearer JWT validation.")
    s3_access_key_id: Optional[str] = Field(default=None, description="Falls back to the boto3 credential chain when unset.")
    s3_secret_access_key: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the Tubely API."""

    model_config = SettingsConfigDict(
        env_prefix="TUBELY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Tubely API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./tubely.db",
        description="SQLAlchemy compatible DSN.",
    )

    assets_root: Path = Field(default_factory=lambda: Path("assets"), description="Local root for thumbnails.")
    public_base_url: str = Field(
        default="http://localhost:8091",
        description="Externally reachable origin used to build /assets URLs.",
    )
    staging_dir: Path | None = Field(
        default=None,
        description="Directory for staged uploads (defaults to the system temp dir).",
    )

    video_storage_backend: Literal["local", "s3"] = Field(default="local", description="Durable store for videos.")
    s3_bucket: Optional[str] = None
    s3_region: str = Field(default="us-east-1")
    s3_endpoint_url: Optional[str] = Field(default=None, description="Override for MinIO or other S3-compatible stores.")
    s3_cf_distribution: Optional[str] = Field(
        default=None,
        description="CDN origin in front of the bucket, e.g. https://d111111abcdef8.cloudfront.net.",
    )

    max_thumbnail_bytes: int = Field(default=10 << 20, description="Ceiling for thumbnail uploads.")
    max_video_bytes: int = Field(default=1 << 30, description="Ceiling for video uploads.")
    multipart_overhead_bytes: int = Field(
        default=64 * 1024,
        description="Allowance for multipart framing when checking Content-Length.",
    )
    upload_chunk_size: int = Field(default=1 << 20, ge=1)

    ffprobe_binary: str = Field(default="ffprobe")
    ffmpeg_binary: str = Field(default="ffmpeg")
    tool_timeout_s: float = Field(default=300.0, gt=0, description="Hard limit for probe/remux subprocesses.")

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def assets_base_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/assets"


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "TUBELY_ENV": "TUBELY_ENVIRONMENT",
        "TUBELY_DB_URL": "TUBELY_DATABASE_URL",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    secrets = Secrets.from_settings(settings)

    if settings.environment_lower == "production":
        if secrets.jwt_secret == "change-me":
            raise ValueError("Production environment must have a non-default JWT secret.")
        if settings.video_storage_backend == "s3" and not settings.s3_bucket:
            raise ValueError("Production environment with the s3 video backend requires TUBELY_S3_BUCKET.")

    settings.secrets = secrets
    return settings


__all__ = ["Settings", "Secrets", "get_settings"]
