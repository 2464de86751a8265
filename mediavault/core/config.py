from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_worker_pool_size() -> int:
    return min(32, (os.cpu_count() or 1) + 4)


class Settings(BaseSettings):
    """Centralised runtime configuration for the MediaVault service."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIAVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "MediaVault API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./mediavault.db",
        description="SQLAlchemy compatible DSN.",
    )
    auto_create_schema: bool = Field(
        default=True,
        description="Create missing tables at startup; disable when Alembic manages the schema.",
    )

    storage_root: Path = Field(default_factory=lambda: Path("uploads"), description="Root for original and thumbnail blobs.")
    temp_dir: Optional[Path] = Field(
        default=None,
        description="Directory for spooled uploads and staged thumbnails (defaults to the system temp dir).",
    )

    max_upload_size_bytes: Optional[int] = Field(
        default=2 * 1024 * 1024 * 1024,
        ge=1,
        description="Hard limit for a single upload; unset disables the check.",
    )

    thumbnail_size: int = Field(default=512, ge=16, description="Edge length of generated thumbnails in pixels.")
    thumbnail_quality: int = Field(default=85, ge=1, le=95, description="JPEG quality for image thumbnails.")
    video_thumbnail_offset_s: float = Field(default=1.0, ge=0, description="Offset of the representative video frame.")

    ffprobe_binary: str = Field(default="ffprobe")
    ffmpeg_binary: str = Field(default="ffmpeg")
    tool_timeout_s: float = Field(default=60.0, gt=0, description="Timeout for a single ffprobe/ffmpeg invocation.")

    worker_pool_size: int = Field(
        default_factory=_default_worker_pool_size,
        ge=1,
        description="Threads available for hashing, sniffing and media derivation.",
    )


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "MEDIAVAULT_ENV": "MEDIAVAULT_ENVIRONMENT",
        "MEDIAVAULT_DB_URL": "MEDIAVAULT_DATABASE_URL",
        "MEDIAVAULT_UPLOAD_DIR": "MEDIAVAULT_STORAGE_ROOT",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    return Settings()


__all__ = ["Settings", "get_settings"]
