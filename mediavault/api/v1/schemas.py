from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from mediavault.db.models import AssetKind


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool
    libmagic: bool


class ImageMetadataModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    make: Optional[str] = None
    model: Optional[str] = None
    software: Optional[str] = None
    captured_at: Optional[str] = None
    exposure_time: Optional[str] = None
    f_number: Optional[float] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = None
    lens_make: Optional[str] = None
    lens_model: Optional[str] = None
    orientation: Optional[int] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    color_space: Optional[str] = None
    tags: Optional[Dict[str, Any]] = None
    raw_exif: Optional[Dict[str, Any]] = None


class VideoMetadataModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    duration: Optional[float] = None
    video_codec: Optional[str] = None
    video_bitrate: Optional[int] = None
    audio_codec: Optional[str] = None
    audio_bitrate: Optional[int] = None
    audio_sample_rate: Optional[int] = None
    audio_channels: Optional[int] = None
    frame_rate: Optional[float] = None
    pixel_format: Optional[str] = None
    color_space: Optional[str] = None
    color_primaries: Optional[str] = None
    color_transfer: Optional[str] = None
    color_range: Optional[str] = None
    is_hdr: bool = False
    hdr_format: Optional[str] = None
    bit_depth: Optional[int] = None
    streams_video: Optional[int] = None
    streams_audio: Optional[int] = None
    streams_subtitle: Optional[int] = None
    total_bitrate: Optional[int] = None


class AssetMetadataResponse(BaseModel):
    image: Optional[ImageMetadataModel] = None
    video: Optional[VideoMetadataModel] = None


class AssetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    original_name: str
    stored_name: str
    file_path: str
    thumbnail_path: Optional[str] = None
    mime_type: str
    kind: AssetKind
    file_size: int
    width: Optional[int] = None
    height: Optional[int] = None
    content_hash: str
    created_at: datetime


class AssetDetailResponse(AssetResponse):
    metadata: AssetMetadataResponse = Field(default_factory=AssetMetadataResponse)


class IngestResponse(BaseModel):
    duplicate: bool
    asset: AssetDetailResponse


class AssetListResponse(BaseModel):
    items: List[AssetResponse]
    total: int
    limit: int
    offset: int


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Any] = None


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "ImageMetadataModel",
    "VideoMetadataModel",
    "AssetMetadataResponse",
    "AssetResponse",
    "AssetDetailResponse",
    "IngestResponse",
    "AssetListResponse",
    "ErrorResponse",
]
