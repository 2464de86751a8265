from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageOps

from mediavault.core.config import Settings
from mediavault.errors import DerivationError

from .exif_mapping import ImageMetadataFields, extract_image_metadata, read_exif_block

__all__ = ["ImageProcessor"]

# Pillow raises these for unreadable, truncated or oversized images.
_PILLOW_ERRORS = (OSError, SyntaxError, ValueError, Image.DecompressionBombError)


class ImageProcessor:
    """Dimensions, square thumbnails and EXIF for still images via Pillow."""

    def __init__(self, settings: Settings):
        self.thumbnail_size = settings.thumbnail_size
        self.thumbnail_quality = settings.thumbnail_quality

    def probe_dimensions(self, image_path: Path) -> Tuple[int, int]:
        try:
            with Image.open(image_path) as img:
                width, height = img.size
        except _PILLOW_ERRORS as exc:
            raise DerivationError(f"could not read image header: {exc}", path=str(image_path)) from exc
        if width <= 0 or height <= 0:
            raise DerivationError("image reports an empty frame", path=str(image_path))
        return width, height

    def render_thumbnail(self, image_path: Path, output_path: Path) -> Tuple[int, int]:
        """Write a square, centre-cropped JPEG thumbnail.

        The EXIF orientation is applied first so the crop matches what a viewer
        shows. Transparent images are flattened onto white.

        Returns:
            Width and height of the written thumbnail.
        """
        size = self.thumbnail_size
        try:
            with Image.open(image_path) as img:
                img.draft("RGB", (size, size))
                oriented = ImageOps.exif_transpose(img)
                rgb = _flatten_to_rgb(oriented)
                thumb = ImageOps.fit(rgb, (size, size), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
                thumb.save(output_path, format="JPEG", quality=self.thumbnail_quality, optimize=True)
                return thumb.size
        except _PILLOW_ERRORS as exc:
            output_path.unlink(missing_ok=True)
            raise DerivationError(f"could not render thumbnail: {exc}", path=str(image_path)) from exc

    def read_metadata(self, image_path: Path) -> Optional[ImageMetadataFields]:
        """Decode embedded EXIF; ``None`` when the image carries none."""
        try:
            with Image.open(image_path) as img:
                block = read_exif_block(img.getexif())
        except _PILLOW_ERRORS as exc:
            raise DerivationError(f"could not read EXIF: {exc}", path=str(image_path)) from exc
        return extract_image_metadata(block)


def _flatten_to_rgb(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA", "P"):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img
