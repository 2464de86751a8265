from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import BIGINT
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mediavault.core.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssetKind(str, enum.Enum):
    image = "image"
    video = "video"


class ImageTag(str, enum.Enum):
    """Closed set of EXIF-family fields kept in ``ImageMetadata.tags``.

    Fields that are queried directly (camera, lens, exposure triangle, GPS) live
    in their own columns; everything else we know how to decode is keyed here.
    """

    # image description
    artist = "artist"
    copyright = "copyright"
    image_width = "image_width"
    image_height = "image_height"
    x_resolution = "x_resolution"
    y_resolution = "y_resolution"
    resolution_unit = "resolution_unit"
    orientation_text = "orientation_text"
    compressed_bits_per_pixel = "compressed_bits_per_pixel"
    rating = "rating"
    user_comment = "user_comment"

    # shooting parameters
    exposure_program = "exposure_program"
    exposure_compensation = "exposure_compensation"
    exposure_mode = "exposure_mode"
    metering_mode = "metering_mode"
    light_source = "light_source"
    flash = "flash"
    subject_distance = "subject_distance"
    subject_distance_range = "subject_distance_range"
    max_aperture_value = "max_aperture_value"
    white_balance = "white_balance"
    contrast = "contrast"
    saturation = "saturation"
    sharpness = "sharpness"
    scene_capture_type = "scene_capture_type"
    custom_rendered = "custom_rendered"
    sensing_method = "sensing_method"
    file_source = "file_source"
    scene_type = "scene_type"

    # dates
    date_time_original = "date_time_original"
    date_time_digitized = "date_time_digitized"
    offset_time = "offset_time"
    offset_time_original = "offset_time_original"
    offset_time_digitized = "offset_time_digitized"

    # lens
    lens_info = "lens_info"
    focal_length_in_35mm_film = "focal_length_in_35mm_film"

    # versions and identity
    exif_version = "exif_version"
    flashpix_version = "flashpix_version"
    components_configuration = "components_configuration"
    interoperability_index = "interoperability_index"
    body_serial_number = "body_serial_number"

    gps_altitude = "gps_altitude"

    # vendor (maker note)
    quality = "quality"
    film_mode = "film_mode"
    dynamic_range = "dynamic_range"
    dynamic_range_setting = "dynamic_range_setting"
    shadow_tone = "shadow_tone"
    highlight_tone = "highlight_tone"
    grain_effect = "grain_effect"
    color_chrome_effect = "color_chrome_effect"
    color_chrome_fx_blue = "color_chrome_fx_blue"
    lens_modulation_optimizer = "lens_modulation_optimizer"
    shutter_type = "shutter_type"
    auto_bracketing = "auto_bracketing"
    sequence_number = "sequence_number"
    blur_warning = "blur_warning"
    focus_warning = "focus_warning"
    exposure_warning = "exposure_warning"
    faces_detected = "faces_detected"
    image_count = "image_count"
    internal_serial_number = "internal_serial_number"


class Asset(Base):
    __tablename__ = "assets"
    __table_args__ = (
        Index("ix_assets_kind_created_at", "kind", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    original_name: Mapped[str] = mapped_column(String(1024), nullable=False)
    stored_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(2048), nullable=False)
    thumbnail_path: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[AssetKind] = mapped_column(Enum(AssetKind), nullable=False)
    file_size: Mapped[int] = mapped_column(BIGINT, nullable=False)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    image_metadata: Mapped[Optional["ImageMetadata"]] = relationship(
        back_populates="asset",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    video_metadata: Mapped[Optional["VideoMetadata"]] = relationship(
        back_populates="asset",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ImageMetadata(Base):
    __tablename__ = "image_metadata"
    __table_args__ = (
        Index("ix_image_metadata_make_model", "make", "model"),
        Index("ix_image_metadata_captured_at", "captured_at"),
        Index("ix_image_metadata_gps", "gps_latitude", "gps_longitude"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id", ondelete="CASCADE"), unique=True, nullable=False)
    make: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    software: Mapped[str | None] = mapped_column(String(255), nullable=True)
    captured_at: Mapped[str | None] = mapped_column(String(64), nullable=True)
    exposure_time: Mapped[str | None] = mapped_column(String(32), nullable=True)
    f_number: Mapped[float | None] = mapped_column(Float, nullable=True)
    iso: Mapped[int | None] = mapped_column(Integer, nullable=True)
    focal_length: Mapped[float | None] = mapped_column(Float, nullable=True)
    lens_make: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lens_model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    orientation: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gps_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    gps_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    color_space: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    raw_exif: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)

    asset: Mapped[Asset] = relationship(back_populates="image_metadata")


class VideoMetadata(Base):
    __tablename__ = "video_metadata"
    __table_args__ = (
        Index("ix_video_metadata_is_hdr", "is_hdr"),
        Index("ix_video_metadata_video_codec", "video_codec"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id", ondelete="CASCADE"), unique=True, nullable=False)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    video_codec: Mapped[str | None] = mapped_column(String(64), nullable=True)
    video_bitrate: Mapped[int | None] = mapped_column(BIGINT, nullable=True)
    audio_codec: Mapped[str | None] = mapped_column(String(64), nullable=True)
    audio_bitrate: Mapped[int | None] = mapped_column(BIGINT, nullable=True)
    audio_sample_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    audio_channels: Mapped[int | None] = mapped_column(Integer, nullable=True)
    frame_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    pixel_format: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color_space: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color_primaries: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color_transfer: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color_range: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_hdr: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hdr_format: Mapped[str | None] = mapped_column(String(32), nullable=True)
    bit_depth: Mapped[int | None] = mapped_column(Integer, nullable=True)
    streams_video: Mapped[int | None] = mapped_column(Integer, nullable=True)
    streams_audio: Mapped[int | None] = mapped_column(Integer, nullable=True)
    streams_subtitle: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_bitrate: Mapped[int | None] = mapped_column(BIGINT, nullable=True)
    raw_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)

    asset: Mapped[Asset] = relationship(back_populates="video_metadata")


__all__ = [
    "Asset",
    "AssetKind",
    "ImageMetadata",
    "ImageTag",
    "VideoMetadata",
]
