from __future__ import annotations

from typing import Any


class MediaVaultError(Exception):
    """Base class for errors raised by the ingestion pipeline."""

    code: str = "mediavault_error"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context


class ValidationError(MediaVaultError):
    """The upload itself is unacceptable. Surfaced to the caller as a client error."""

    code = "validation_error"

    def __init__(self, reason: str, message: str | None = None, **context: Any) -> None:
        super().__init__(message or reason, **context)
        self.reason = reason


class DerivationError(MediaVaultError):
    """A thumbnail or metadata stage failed. Recovered inside the media processor."""

    code = "derivation_error"


class ConflictError(MediaVaultError):
    """Another asset with the same content hash was committed first."""

    code = "content_hash_conflict"

    def __init__(self, content_hash: str, message: str | None = None) -> None:
        super().__init__(message or f"asset with content hash {content_hash} already exists", content_hash=content_hash)
        self.content_hash = content_hash


class StorageError(MediaVaultError):
    """Writing or deleting bytes under the storage root failed."""

    code = "storage_error"


class PersistenceError(MediaVaultError):
    """A database operation failed for a reason other than a hash conflict."""

    code = "persistence_error"


class AssetNotFoundError(MediaVaultError, LookupError):
    code = "asset_not_found"

    def __init__(self, asset_id: int) -> None:
        super().__init__(f"asset {asset_id} not found", asset_id=asset_id)
        self.asset_id = asset_id


__all__ = [
    "MediaVaultError",
    "ValidationError",
    "DerivationError",
    "ConflictError",
    "StorageError",
    "PersistenceError",
    "AssetNotFoundError",
]
