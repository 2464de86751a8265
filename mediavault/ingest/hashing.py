from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
from typing import BinaryIO, Optional

from mediavault.core.logging import get_logger
from mediavault.errors import ValidationError

__all__ = [
    "UploadReceipt",
    "compute_sha256",
    "hash_stream",
    "spool_upload",
]

DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024

logger = get_logger(component="hashing")


@dataclass(slots=True)
class UploadReceipt:
    """An upload spooled to a temporary file, with its size and content hash."""

    path: Path
    size_bytes: int
    content_hash: str


def compute_sha256(path: Path, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Return a hexadecimal SHA256 digest for the file.

    Args:
        path: The path to the file.
        chunk_size: The chunk size to use when reading the file.

    Returns:
        The hexadecimal SHA256 digest.
    """
    digest = sha256()
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def hash_stream(source: BinaryIO, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Return a hexadecimal SHA256 digest for everything left in a binary stream."""
    digest = sha256()
    while chunk := source.read(chunk_size):
        digest.update(chunk)
    return digest.hexdigest()


def spool_upload(
    source: BinaryIO,
    *,
    temp_dir: Optional[Path] = None,
    max_bytes: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> UploadReceipt:
    """Copy an upload into a temporary file while hashing it.

    The digest and the spooled file come from the same single pass over the
    stream, so the hash always describes exactly the bytes that were kept.

    Args:
        source: Readable binary stream positioned at the start of the upload.
        temp_dir: Directory for the spool file; the system default when ``None``.
        max_bytes: Reject uploads larger than this many bytes.
        chunk_size: Read size for each pass.

    Returns:
        The receipt for the spooled upload. The caller owns the file.

    Raises:
        ValidationError: The upload is empty or exceeds ``max_bytes``.
        OSError: Reading the source or writing the spool file failed.
    """
    if temp_dir is not None:
        temp_dir.mkdir(parents=True, exist_ok=True)

    handle = tempfile.NamedTemporaryFile(
        prefix="mediavault-",
        suffix=".upload",
        dir=str(temp_dir) if temp_dir is not None else None,
        delete=False,
    )
    path = Path(handle.name)
    digest = sha256()
    size = 0
    try:
        with handle:
            while chunk := source.read(chunk_size):
                size += len(chunk)
                if max_bytes is not None and size > max_bytes:
                    raise ValidationError(
                        "upload_too_large",
                        f"upload exceeds the {max_bytes} byte limit",
                        max_bytes=max_bytes,
                    )
                digest.update(chunk)
                handle.write(chunk)
        if size == 0:
            raise ValidationError("empty_upload", "no file content was received")
    except BaseException:
        _discard(path)
        raise

    content_hash = digest.hexdigest()
    logger.debug("upload_spooled", path=str(path), size_bytes=size, content_hash=content_hash)
    return UploadReceipt(path=path, size_bytes=size, content_hash=content_hash)


def _discard(path: Path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
