from __future__ import annotations

import enum
import os
import shutil
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Callable

from mediavault.errors import StorageError

from .config import Settings
from .logging import get_logger

logger = get_logger(component="blob_store")

Clock = Callable[[], datetime]

_MAX_NAME_ATTEMPTS = 5


class BlobKind(str, enum.Enum):
    original = "original"
    thumbnail = "thumbnails"


@dataclass(slots=True)
class PlacedBlob:
    stored_name: str
    relative_path: str
    absolute_path: Path


class BlobStore(ABC):
    """Owns every byte written below the storage root."""

    @abstractmethod
    def place(self, kind: BlobKind, source: Path, extension: str, *, name: str | None = None) -> PlacedBlob: ...

    @abstractmethod
    def delete(self, relative_path: str) -> bool: ...

    @abstractmethod
    def resolve(self, relative_path: str) -> Path: ...

    @abstractmethod
    def exists(self, relative_path: str) -> bool: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store laid out as ``{kind}/YYYY/MM/DD/{name}{ext}``.

    Paths handed out are relative to the root and use forward slashes so they can
    be stored in the database unchanged across platforms.
    """

    def __init__(self, root: Path, clock: Clock = _utcnow):
        self.root = Path(root).resolve()
        self._clock = clock

    def _partition(self, kind: BlobKind) -> PurePosixPath:
        now = self._clock()
        return PurePosixPath(kind.value, f"{now.year:04d}", f"{now.month:02d}", f"{now.day:02d}")

    def place(self, kind: BlobKind, source: Path, extension: str, *, name: str | None = None) -> PlacedBlob:
        """Copy ``source`` into the store and return where it landed.

        Originals get a random name unless one is supplied; thumbnails are named
        by the caller (the owning asset id). Existing files are never replaced.
        """
        if kind is BlobKind.thumbnail and name is None:
            raise ValueError("thumbnail blobs must be placed with an explicit name")
        extension = extension if extension.startswith(".") or not extension else f".{extension}"
        partition = self._partition(kind)
        directory = self.root / Path(*partition.parts)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"could not create {directory}", path=str(directory)) from exc

        attempts = 1 if name is not None else _MAX_NAME_ATTEMPTS
        for _ in range(attempts):
            stored_name = f"{name if name is not None else uuid.uuid4().hex}{extension}"
            target = directory / stored_name
            try:
                with source.open("rb") as reader, target.open("xb") as writer:
                    shutil.copyfileobj(reader, writer)
            except FileExistsError:
                logger.warning("blob_name_collision", kind=kind.value, stored_name=stored_name)
                continue
            except OSError as exc:
                self._remove_quietly(target)
                raise StorageError(f"could not write {stored_name}", path=str(target)) from exc

            relative = str(partition / stored_name)
            logger.info("blob_placed", kind=kind.value, path=relative, size_bytes=target.stat().st_size)
            return PlacedBlob(stored_name=stored_name, relative_path=relative, absolute_path=target)

        raise StorageError(f"a {kind.value} blob named {stored_name} already exists", path=str(partition / stored_name))

    def delete(self, relative_path: str) -> bool:
        path = self.resolve(relative_path)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.info("blob_delete_noop", path=relative_path)
            return False
        except OSError as exc:
            raise StorageError(f"could not delete {relative_path}", path=relative_path) from exc
        logger.info("blob_deleted", path=relative_path)
        return True

    def resolve(self, relative_path: str) -> Path:
        candidate = (self.root / relative_path).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise StorageError(f"path {relative_path} escapes the storage root", path=relative_path)
        return candidate

    def exists(self, relative_path: str) -> bool:
        return self.resolve(relative_path).is_file()

    @staticmethod
    def _remove_quietly(path: Path) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def get_blob_store(settings: Settings) -> BlobStore:
    return LocalBlobStore(root=settings.storage_root)


__all__ = [
    "BlobKind",
    "BlobStore",
    "LocalBlobStore",
    "PlacedBlob",
    "get_blob_store",
]
