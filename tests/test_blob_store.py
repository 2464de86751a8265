from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from mediavault.core.config import get_settings
from mediavault.core.storage import BlobKind, LocalBlobStore, get_blob_store
from mediavault.errors import StorageError


def _clock() -> datetime:
    return datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs", clock=_clock)


@pytest.fixture()
def source(tmp_path: Path) -> Path:
    path = tmp_path / "source.bin"
    path.write_bytes(b"payload")
    return path


def test_default_store_is_local_under_upload_dir(tmp_path: Path):
    store = get_blob_store(get_settings())
    assert isinstance(store, LocalBlobStore)
    assert store.root == (tmp_path / "uploads").resolve()


def test_original_is_placed_under_date_partition(store: LocalBlobStore, source: Path):
    placed = store.place(BlobKind.original, source, ".jpg")

    assert placed.relative_path.startswith("original/2024/03/09/")
    assert placed.relative_path.endswith(".jpg")
    assert placed.stored_name == placed.relative_path.rsplit("/", 1)[1]
    assert placed.absolute_path.read_bytes() == b"payload"
    assert store.exists(placed.relative_path)


def test_originals_get_distinct_names(store: LocalBlobStore, source: Path):
    first = store.place(BlobKind.original, source, "mp4")
    second = store.place(BlobKind.original, source, "mp4")
    assert first.relative_path != second.relative_path
    assert first.stored_name.endswith(".mp4")


def test_thumbnail_is_named_by_caller(store: LocalBlobStore, source: Path):
    placed = store.place(BlobKind.thumbnail, source, ".jpg", name="42")
    assert placed.relative_path == "thumbnails/2024/03/09/42.jpg"


def test_thumbnail_requires_name(store: LocalBlobStore, source: Path):
    with pytest.raises(ValueError):
        store.place(BlobKind.thumbnail, source, ".jpg")


def test_existing_blob_is_never_overwritten(store: LocalBlobStore, source: Path, tmp_path: Path):
    store.place(BlobKind.thumbnail, source, ".jpg", name="7")
    other = tmp_path / "other.bin"
    other.write_bytes(b"different")

    with pytest.raises(StorageError):
        store.place(BlobKind.thumbnail, other, ".jpg", name="7")
    assert store.resolve("thumbnails/2024/03/09/7.jpg").read_bytes() == b"payload"


def test_delete_is_idempotent(store: LocalBlobStore, source: Path):
    placed = store.place(BlobKind.original, source, ".jpg")
    assert store.delete(placed.relative_path) is True
    assert store.delete(placed.relative_path) is False
    assert not store.exists(placed.relative_path)


def test_resolve_rejects_escaping_paths(store: LocalBlobStore):
    with pytest.raises(StorageError):
        store.resolve("../outside.txt")


def test_missing_source_raises_storage_error(store: LocalBlobStore, tmp_path: Path):
    with pytest.raises(StorageError):
        store.place(BlobKind.original, tmp_path / "missing.bin", ".jpg")
