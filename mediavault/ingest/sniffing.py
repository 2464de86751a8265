from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Optional

import magic

from mediavault.db.models import AssetKind
from mediavault.errors import ValidationError

__all__ = [
    "SNIFF_BYTES",
    "UNKNOWN_MIME",
    "classify",
    "extension_for_mime",
    "sniff_file",
    "sniff_mime",
]

SNIFF_BYTES = 8192
UNKNOWN_MIME = "unknown"

_INDETERMINATE = {"", "application/octet-stream", "application/x-empty", "inode/x-empty"}

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/tiff": ".tiff",
    "image/bmp": ".bmp",
    "image/x-ms-bmp": ".bmp",
    "image/heic": ".heic",
    "image/heif": ".heif",
    "image/avif": ".avif",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
    "video/webm": ".webm",
    "video/x-msvideo": ".avi",
    "video/mpeg": ".mpg",
    "video/3gpp": ".3gp",
    "video/x-m4v": ".m4v",
    "video/mp2t": ".ts",
    "video/x-flv": ".flv",
}


def sniff_mime(buffer: bytes) -> str:
    """Classify the leading bytes of a file by signature.

    Returns ``"unknown"`` when libmagic cannot tell anything more specific than
    an opaque byte stream.
    """
    if not buffer:
        return UNKNOWN_MIME
    detected = (magic.from_buffer(buffer[:SNIFF_BYTES], mime=True) or "").strip().lower()
    if detected in _INDETERMINATE:
        return UNKNOWN_MIME
    return detected


def sniff_file(path: Path) -> str:
    with path.open("rb") as handle:
        head = handle.read(SNIFF_BYTES)
    return sniff_mime(head)


def classify(mime: Optional[str]) -> AssetKind:
    """Map a sniffed MIME type onto an asset kind or reject it."""
    if not mime:
        raise ValidationError("no_file", "no file content was received")
    if mime == UNKNOWN_MIME:
        raise ValidationError("undetectable_type", "could not determine the file type")
    if mime.startswith("image/"):
        return AssetKind.image
    if mime.startswith("video/"):
        return AssetKind.video
    raise ValidationError(
        "unsupported_type",
        f"file type {mime} is not allowed; only images and videos are accepted",
        mime_type=mime,
    )


def extension_for_mime(mime: str) -> str:
    """Return a file extension (with the dot) for a detected MIME type."""
    known = _EXTENSIONS.get(mime)
    if known:
        return known
    guessed = mimetypes.guess_extension(mime, strict=False)
    return guessed or ".bin"
