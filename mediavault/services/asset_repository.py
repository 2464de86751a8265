from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mediavault.core.logging import get_logger
from mediavault.db.models import Asset, AssetKind, ImageMetadata, VideoMetadata
from mediavault.errors import ConflictError, PersistenceError
from mediavault.ingest.exif_mapping import ImageMetadataFields
from mediavault.ingest.ffprobe_parser import VideoMetadataFields

IMAGE_METADATA_COLUMNS = (
    "make",
    "model",
    "software",
    "captured_at",
    "exposure_time",
    "f_number",
    "iso",
    "focal_length",
    "lens_make",
    "lens_model",
    "orientation",
    "gps_latitude",
    "gps_longitude",
    "color_space",
    "tags",
    "raw_exif",
)

VIDEO_METADATA_COLUMNS = (
    "duration",
    "video_codec",
    "video_bitrate",
    "audio_codec",
    "audio_bitrate",
    "audio_sample_rate",
    "audio_channels",
    "frame_rate",
    "pixel_format",
    "color_space",
    "color_primaries",
    "color_transfer",
    "color_range",
    "is_hdr",
    "hdr_format",
    "bit_depth",
    "streams_video",
    "streams_audio",
    "streams_subtitle",
    "total_bitrate",
    "raw_metadata",
)


@dataclass(slots=True)
class AssetDraft:
    original_name: str
    stored_name: str
    file_path: str
    mime_type: str
    kind: AssetKind
    file_size: int
    content_hash: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(slots=True)
class AssetMetadata:
    image: Optional[ImageMetadata] = None
    video: Optional[VideoMetadata] = None


def _nullable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, (dict, list)) and not value:
        return None
    return value


class AssetRepository:
    """Data access for assets and their metadata rows.

    Write methods only flush; the caller owns the transaction and decides when
    to ``commit`` or ``rollback``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = get_logger(component="asset_repository")

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.logger.error("repository_operation_failed", operation=operation, error=str(exc))
            raise PersistenceError(f"{operation} failed", operation=operation) from exc

    async def create_asset(self, draft: AssetDraft) -> Asset:
        asset = Asset(
            original_name=draft.original_name,
            stored_name=draft.stored_name,
            file_path=draft.file_path,
            mime_type=draft.mime_type,
            kind=draft.kind,
            file_size=draft.file_size,
            width=draft.width,
            height=draft.height,
            content_hash=draft.content_hash,
        )
        self.session.add(asset)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if "content_hash" in str(exc.orig).lower():
                self.logger.info("asset_hash_conflict", content_hash=draft.content_hash)
                raise ConflictError(draft.content_hash) from exc
            raise PersistenceError("create_asset failed", operation="create_asset") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("create_asset failed", operation="create_asset") from exc
        return asset

    async def attach_thumbnail(self, asset: Asset, thumbnail_path: str) -> Asset:
        with self._guard("attach_thumbnail"):
            asset.thumbnail_path = thumbnail_path
            await self.session.flush()
        return asset

    async def get_by_id(self, asset_id: int) -> Asset | None:
        with self._guard("get_by_id"):
            return await self.session.get(Asset, asset_id)

    async def get_by_hash(self, content_hash: str) -> Asset | None:
        with self._guard("get_by_hash"):
            stmt = select(Asset).where(Asset.content_hash == content_hash)
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

    async def list(self, *, limit: int = 50, offset: int = 0, kind: AssetKind | None = None) -> Sequence[Asset]:
        with self._guard("list"):
            stmt = select(Asset).order_by(Asset.created_at.desc(), Asset.id.desc()).limit(limit).offset(offset)
            if kind is not None:
                stmt = stmt.where(Asset.kind == kind)
            result = await self.session.execute(stmt)
            return result.scalars().all()

    async def count(self, *, kind: AssetKind | None = None) -> int:
        with self._guard("count"):
            stmt = select(func.count(Asset.id))
            if kind is not None:
                stmt = stmt.where(Asset.kind == kind)
            result = await self.session.execute(stmt)
            return int(result.scalar_one())

    async def delete_by_id(self, asset_id: int) -> Asset | None:
        """Delete an asset row; metadata rows go with it through the FK cascade."""
        with self._guard("delete_by_id"):
            asset = await self.session.get(Asset, asset_id)
            if asset is None:
                return None
            await self.session.delete(asset)
            await self.session.flush()
            return asset

    async def create_image_metadata(self, asset_id: int, fields: ImageMetadataFields) -> ImageMetadata:
        values = {column: _nullable(getattr(fields, column)) for column in IMAGE_METADATA_COLUMNS}
        with self._guard("create_image_metadata"):
            row = ImageMetadata(asset_id=asset_id, **values)
            self.session.add(row)
            await self.session.flush()
            return row

    async def create_video_metadata(self, asset_id: int, fields: VideoMetadataFields) -> VideoMetadata:
        values = {column: _nullable(getattr(fields, column)) for column in VIDEO_METADATA_COLUMNS}
        values["is_hdr"] = bool(fields.is_hdr)
        with self._guard("create_video_metadata"):
            row = VideoMetadata(asset_id=asset_id, **values)
            self.session.add(row)
            await self.session.flush()
            return row

    async def get_metadata_by_asset_id(self, asset_id: int) -> AssetMetadata:
        with self._guard("get_metadata_by_asset_id"):
            image = (
                await self.session.execute(select(ImageMetadata).where(ImageMetadata.asset_id == asset_id))
            ).scalar_one_or_none()
            video = (
                await self.session.execute(select(VideoMetadata).where(VideoMetadata.asset_id == asset_id))
            ).scalar_one_or_none()
        return AssetMetadata(image=image, video=video)

    async def commit(self) -> None:
        with self._guard("commit"):
            await self.session.commit()

    async def rollback(self) -> None:
        with self._guard("rollback"):
            await self.session.rollback()


__all__ = [
    "AssetDraft",
    "AssetMetadata",
    "AssetRepository",
    "IMAGE_METADATA_COLUMNS",
    "VIDEO_METADATA_COLUMNS",
]
