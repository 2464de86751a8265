from __future__ import annotations

import asyncio
import functools
import os
import shutil
import tempfile
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, Optional, Sequence, TypeVar

from mediavault.core.config import Settings
from mediavault.core.logging import get_logger
from mediavault.core.storage import BlobKind, BlobStore, PlacedBlob
from mediavault.db.models import Asset, AssetKind
from mediavault.errors import AssetNotFoundError, ConflictError, MediaVaultError, PersistenceError, ValidationError
from mediavault.ingest.hashing import UploadReceipt, spool_upload
from mediavault.ingest.media import THUMBNAIL_EXTENSION, DerivedMedia, MediaProcessor
from mediavault.ingest.sniffing import classify, extension_for_mime, sniff_file

from .asset_repository import AssetDraft, AssetMetadata, AssetRepository

T = TypeVar("T")


@dataclass(slots=True)
class IngestResult:
    asset: Asset
    metadata: AssetMetadata
    duplicate: bool = False


@dataclass(slots=True)
class AssetPage:
    items: Sequence[Asset]
    total: int
    limit: int
    offset: int


class IngestService:
    """Turns an uploaded byte stream into a stored, deduplicated asset.

    Blocking work (hashing, sniffing, image decoding and ffmpeg) runs on the
    supplied executor, or on the default thread pool when none is given.
    """

    def __init__(
        self,
        settings: Settings,
        blob_store: BlobStore,
        repository: AssetRepository,
        media_processor: MediaProcessor,
        executor: Optional[Executor] = None,
    ):
        self.settings = settings
        self.blob_store = blob_store
        self.repository = repository
        self.media = media_processor
        self.executor = executor
        self.logger = get_logger(component="ingest_service")

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        if self.executor is None:
            return await asyncio.to_thread(func, *args, **kwargs)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(func, *args, **kwargs))

    async def ingest(
        self,
        source: BinaryIO,
        *,
        original_name: Optional[str],
        declared_size: Optional[int] = None,
    ) -> IngestResult:
        """Ingest one upload.

        The client-supplied name and size are advisory: the name is only
        recorded, and the size is only used to reject obviously oversized
        uploads early. Type and identity always come from the bytes.
        """
        name = (original_name or "").strip() or "upload"
        log = self.logger.bind(original_name=name)
        limit = self.settings.max_upload_size_bytes
        if declared_size is not None and limit is not None and declared_size > limit:
            raise ValidationError("upload_too_large", f"upload exceeds the {limit} byte limit", max_bytes=limit)

        receipt = await self._run(spool_upload, source, temp_dir=self.settings.temp_dir, max_bytes=limit)
        staging_dir: Optional[Path] = None
        try:
            existing = await self.repository.get_by_hash(receipt.content_hash)
            if existing is not None:
                log.info("asset_duplicate", asset_id=existing.id, content_hash=receipt.content_hash)
                return await self._duplicate(existing)

            mime_type = await self._run(sniff_file, receipt.path)
            kind = classify(mime_type)
            log = log.bind(mime_type=mime_type, kind=kind.value, content_hash=receipt.content_hash)

            staging_dir = Path(tempfile.mkdtemp(prefix="mediavault-stage-", dir=self._temp_dir()))
            return await self._store(receipt, name, mime_type, kind, staging_dir, log)
        finally:
            _remove_file(receipt.path)
            if staging_dir is not None:
                shutil.rmtree(staging_dir, ignore_errors=True)

    async def _store(
        self,
        receipt: UploadReceipt,
        original_name: str,
        mime_type: str,
        kind: AssetKind,
        staging_dir: Path,
        log: Any,
    ) -> IngestResult:
        original = await self._run(
            self.blob_store.place,
            BlobKind.original,
            receipt.path,
            extension_for_mime(mime_type),
        )
        thumbnail: Optional[PlacedBlob] = None
        try:
            derived: DerivedMedia = await self._run(self.media.derive, kind, original.absolute_path, staging_dir)

            asset = await self.repository.create_asset(
                AssetDraft(
                    original_name=original_name,
                    stored_name=original.stored_name,
                    file_path=original.relative_path,
                    mime_type=mime_type,
                    kind=kind,
                    file_size=receipt.size_bytes,
                    content_hash=receipt.content_hash,
                    width=derived.width,
                    height=derived.height,
                )
            )

            if derived.thumbnail is not None and derived.thumbnail.exists():
                thumbnail = await self._run(
                    self.blob_store.place,
                    BlobKind.thumbnail,
                    derived.thumbnail,
                    THUMBNAIL_EXTENSION,
                    name=str(asset.id),
                )
                await self.repository.attach_thumbnail(asset, thumbnail.relative_path)

            metadata = AssetMetadata()
            if kind is AssetKind.image and derived.image_metadata is not None:
                metadata.image = await self.repository.create_image_metadata(asset.id, derived.image_metadata)
            if kind is AssetKind.video and derived.video_metadata is not None:
                metadata.video = await self.repository.create_video_metadata(asset.id, derived.video_metadata)

            await self.repository.commit()
        except ConflictError as exc:
            await self._discard(original, thumbnail)
            winner = await self.repository.get_by_hash(exc.content_hash)
            if winner is None:
                raise PersistenceError("conflicting asset vanished before it could be read", content_hash=exc.content_hash) from exc
            log.info("asset_duplicate_race", asset_id=winner.id)
            return await self._duplicate(winner)
        except BaseException:
            log.exception("asset_ingest_failed", stored_path=original.relative_path)
            await self._discard(original, thumbnail)
            raise

        log.info(
            "asset_ingested",
            asset_id=asset.id,
            file_path=asset.file_path,
            thumbnail_path=asset.thumbnail_path,
            size_bytes=asset.file_size,
        )
        return IngestResult(asset=asset, metadata=metadata, duplicate=False)

    async def _duplicate(self, asset: Asset) -> IngestResult:
        metadata = await self.repository.get_metadata_by_asset_id(asset.id)
        return IngestResult(asset=asset, metadata=metadata, duplicate=True)

    async def _discard(self, *blobs: Optional[PlacedBlob]) -> None:
        try:
            await self.repository.rollback()
        except PersistenceError:
            self.logger.exception("rollback_failed")
        for blob in blobs:
            if blob is None:
                continue
            try:
                await self._run(self.blob_store.delete, blob.relative_path)
            except MediaVaultError:
                self.logger.exception("blob_cleanup_failed", path=blob.relative_path)

    def _temp_dir(self) -> Optional[str]:
        temp_dir = self.settings.temp_dir
        if temp_dir is None:
            return None
        temp_dir.mkdir(parents=True, exist_ok=True)
        return str(temp_dir)

    async def get_asset(self, asset_id: int) -> IngestResult:
        asset = await self.repository.get_by_id(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        metadata = await self.repository.get_metadata_by_asset_id(asset_id)
        return IngestResult(asset=asset, metadata=metadata, duplicate=False)

    async def list_assets(self, *, limit: int = 50, offset: int = 0, kind: AssetKind | None = None) -> AssetPage:
        items = await self.repository.list(limit=limit, offset=offset, kind=kind)
        total = await self.repository.count(kind=kind)
        return AssetPage(items=items, total=total, limit=limit, offset=offset)

    async def delete_asset(self, asset_id: int) -> Asset:
        """Delete the row (and its metadata), then the files it pointed at.

        Missing files are tolerated, so a half-cleaned asset can still be
        removed. A second delete of the same id raises ``AssetNotFoundError``.
        """
        asset = await self.repository.delete_by_id(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        await self.repository.commit()

        for path in (asset.file_path, asset.thumbnail_path):
            if path:
                await self._run(self.blob_store.delete, path)
        self.logger.info("asset_deleted", asset_id=asset_id, file_path=asset.file_path)
        return asset

    async def resolve_blob(self, asset_id: int, *, thumbnail: bool = False) -> tuple[Asset, Path]:
        asset = await self.repository.get_by_id(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        relative = asset.thumbnail_path if thumbnail else asset.file_path
        if not relative or not self.blob_store.exists(relative):
            raise AssetNotFoundError(asset_id)
        return asset, self.blob_store.resolve(relative)


def _remove_file(path: Path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


__all__ = ["AssetPage", "IngestResult", "IngestService"]
