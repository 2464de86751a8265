from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mediavault.core.config import Settings
from mediavault.core.logging import get_logger
from mediavault.db.models import AssetKind

from .exif_mapping import ImageMetadataFields
from .ffprobe_parser import VideoMetadataFields
from .image_processor import ImageProcessor
from .tools import ToolRunner, run_tool
from .video_processor import VideoProcessor

__all__ = ["DerivedMedia", "MediaProcessor", "THUMBNAIL_EXTENSION"]

logger = get_logger(component="media_processor")

THUMBNAIL_EXTENSION = ".jpg"


@dataclass(slots=True)
class DerivedMedia:
    """Everything derived from one file. Any field may be absent."""

    width: Optional[int] = None
    height: Optional[int] = None
    thumbnail: Optional[Path] = None
    image_metadata: Optional[ImageMetadataFields] = None
    video_metadata: Optional[VideoMetadataFields] = None


class MediaProcessor:
    """Runs the per-kind derivation stages, each of which may fail on its own.

    A failed stage is logged and leaves its fields empty; the asset is still
    recorded with whatever the other stages produced.
    """

    def __init__(self, image: ImageProcessor, video: VideoProcessor):
        self.image = image
        self.video = video

    @classmethod
    def from_settings(cls, settings: Settings, runner: ToolRunner = run_tool) -> "MediaProcessor":
        return cls(image=ImageProcessor(settings), video=VideoProcessor(settings, runner=runner))

    def derive(self, kind: AssetKind, source: Path, staging_dir: Path) -> DerivedMedia:
        staged_thumbnail = staging_dir / f"thumbnail{THUMBNAIL_EXTENSION}"
        if kind is AssetKind.image:
            return self._derive_image(source, staged_thumbnail)
        return self._derive_video(source, staged_thumbnail)

    def _derive_image(self, source: Path, staged_thumbnail: Path) -> DerivedMedia:
        derived = DerivedMedia()
        log = logger.bind(kind=AssetKind.image.value, path=str(source))

        try:
            derived.width, derived.height = self.image.probe_dimensions(source)
        except Exception:
            log.exception("image_dimensions_failed")

        try:
            self.image.render_thumbnail(source, staged_thumbnail)
            derived.thumbnail = staged_thumbnail
        except Exception:
            log.exception("image_thumbnail_failed")

        try:
            derived.image_metadata = self.image.read_metadata(source)
        except Exception:
            log.exception("image_metadata_failed")

        log.info(
            "image_derived",
            width=derived.width,
            height=derived.height,
            thumbnail=derived.thumbnail is not None,
            exif=derived.image_metadata is not None,
        )
        return derived

    def _derive_video(self, source: Path, staged_thumbnail: Path) -> DerivedMedia:
        derived = DerivedMedia()
        log = logger.bind(kind=AssetKind.video.value, path=str(source))

        fields: Optional[VideoMetadataFields] = None
        try:
            raw = self.video.probe(source)
            fields = self.video.describe(raw)
        except Exception:
            log.exception("video_probe_failed")

        if fields is not None:
            derived.width, derived.height = fields.width, fields.height
            derived.video_metadata = fields

        try:
            self.video.render_thumbnail(source, staged_thumbnail, fields.duration if fields else None)
            derived.thumbnail = staged_thumbnail
        except Exception:
            log.exception("video_thumbnail_failed")

        log.info(
            "video_derived",
            width=derived.width,
            height=derived.height,
            thumbnail=derived.thumbnail is not None,
            is_hdr=fields.is_hdr if fields else None,
            hdr_format=fields.hdr_format if fields else None,
        )
        return derived
