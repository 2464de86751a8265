from __future__ import annotations

import hashlib
import io
from pathlib import Path

import pytest

from mediavault.errors import ValidationError
from mediavault.ingest.hashing import compute_sha256, hash_stream, spool_upload


def test_compute_sha256_matches_hashlib(tmp_path: Path):
    payload = b"mediavault" * 1000
    target = tmp_path / "blob.bin"
    target.write_bytes(payload)

    assert compute_sha256(target, chunk_size=7) == hashlib.sha256(payload).hexdigest()


def test_hash_stream_reads_remaining_bytes():
    stream = io.BytesIO(b"header|body")
    stream.read(7)
    assert hash_stream(stream) == hashlib.sha256(b"body").hexdigest()


def test_spool_upload_hashes_and_copies_in_one_pass(tmp_path: Path):
    payload = bytes(range(256)) * 50
    receipt = spool_upload(io.BytesIO(payload), temp_dir=tmp_path / "spool", chunk_size=100)

    assert receipt.path.parent == tmp_path / "spool"
    assert receipt.path.read_bytes() == payload
    assert receipt.size_bytes == len(payload)
    assert receipt.content_hash == hashlib.sha256(payload).hexdigest()
    assert len(receipt.content_hash) == 64


def test_spool_upload_rejects_empty_stream_and_cleans_up(tmp_path: Path):
    spool_dir = tmp_path / "spool"
    with pytest.raises(ValidationError) as excinfo:
        spool_upload(io.BytesIO(b""), temp_dir=spool_dir)
    assert excinfo.value.reason == "empty_upload"
    assert list(spool_dir.iterdir()) == []


def test_spool_upload_enforces_size_limit(tmp_path: Path):
    spool_dir = tmp_path / "spool"
    with pytest.raises(ValidationError) as excinfo:
        spool_upload(io.BytesIO(b"x" * 11), temp_dir=spool_dir, max_bytes=10, chunk_size=4)
    assert excinfo.value.reason == "upload_too_large"
    assert list(spool_dir.iterdir()) == []


def test_identical_bytes_produce_identical_hashes(tmp_path: Path):
    first = spool_upload(io.BytesIO(b"same bytes"), temp_dir=tmp_path / "spool")
    second = spool_upload(io.BytesIO(b"same bytes"), temp_dir=tmp_path / "spool")
    assert first.content_hash == second.content_hash
    assert first.path != second.path
