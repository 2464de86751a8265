from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import cv2  # type: ignore

from mediavault.core.config import Settings
from mediavault.core.logging import get_logger
from mediavault.errors import DerivationError

from .ffprobe_parser import VideoMetadataFields, parse_video_metadata
from .tools import ToolRunner, run_tool

__all__ = ["VideoProcessor"]

logger = get_logger(component="video_processor")


class VideoProcessor:
    """Probe videos with ffprobe and grab a representative frame with ffmpeg."""

    def __init__(self, settings: Settings, runner: ToolRunner = run_tool):
        self.thumbnail_size = settings.thumbnail_size
        self.offset_s = settings.video_thumbnail_offset_s
        self.ffprobe = settings.ffprobe_binary
        self.ffmpeg = settings.ffmpeg_binary
        self.timeout_s = settings.tool_timeout_s
        self._run = runner

    def probe(self, video_path: Path) -> Dict[str, Any]:
        command = [
            self.ffprobe,
            "-v",
            "error",
            "-show_format",
            "-show_streams",
            "-print_format",
            "json",
            str(video_path),
        ]
        result = self._run(command, timeout=self.timeout_s)
        try:
            payload = json.loads(result.stdout or "")
        except json.JSONDecodeError as exc:
            raise DerivationError("ffprobe returned malformed JSON", path=str(video_path)) from exc
        if not isinstance(payload, dict):
            raise DerivationError("ffprobe returned an unexpected document", path=str(video_path))
        return payload

    def describe(self, raw: Dict[str, Any]) -> VideoMetadataFields:
        return parse_video_metadata(raw)

    def render_thumbnail(self, video_path: Path, output_path: Path, duration: Optional[float] = None) -> Tuple[int, int]:
        """Write a JPEG frame bounded to ``thumbnail_size`` on its long edge.

        The frame is taken at the configured offset, pulled back into the clip
        when the clip is shorter than the offset, and retaken from the first
        frame if seeking produced nothing.

        Returns:
            Width and height of the written frame.
        """
        timestamp = self._clamp_offset(duration)
        try:
            return self._extract_and_measure(video_path, timestamp, output_path)
        except DerivationError:
            if timestamp <= 0:
                raise
            logger.info("video_thumbnail_retry_first_frame", path=str(video_path), timestamp_s=timestamp)
            return self._extract_and_measure(video_path, 0.0, output_path)

    def _clamp_offset(self, duration: Optional[float]) -> float:
        offset = max(self.offset_s, 0.0)
        if duration is not None and duration > 0 and offset >= duration:
            return round(duration / 2.0, 3)
        return offset

    def _extract_and_measure(self, video_path: Path, timestamp: float, output_path: Path) -> Tuple[int, int]:
        size = self.thumbnail_size
        command = [
            self.ffmpeg,
            "-nostdin",
            "-v",
            "error",
            "-ss",
            f"{max(timestamp, 0.0):.3f}",
            "-i",
            str(video_path),
            "-frames:v",
            "1",
            "-vf",
            f"scale=w={size}:h={size}:force_original_aspect_ratio=decrease",
            "-f",
            "image2",
            "-c:v",
            "mjpeg",
            "-q:v",
            "2",
            "-y",
            str(output_path),
        ]
        try:
            self._run(command, timeout=self.timeout_s)
        except DerivationError:
            output_path.unlink(missing_ok=True)
            raise

        try:
            return _image_dimensions(output_path)
        except RuntimeError as exc:
            output_path.unlink(missing_ok=True)
            raise DerivationError(str(exc), path=str(video_path)) from exc


def _image_dimensions(image_path: Path) -> Tuple[int, int]:
    if not image_path.exists():
        raise RuntimeError(f"No thumbnail was written at {image_path}")
    image = cv2.imread(str(image_path))
    if image is None:
        raise RuntimeError(f"Failed to read generated thumbnail at {image_path}")
    height, width = image.shape[:2]
    return width, height
