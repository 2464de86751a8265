from __future__ import annotations

from collections.abc import AsyncIterator
from concurrent.futures import Executor
from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediavault.core.config import Settings, get_settings
from mediavault.core.storage import BlobStore
from mediavault.ingest.media import MediaProcessor
from mediavault.services.asset_repository import AssetRepository
from mediavault.services.ingest_service import IngestService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover - defensive
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_blob_store(request: Request) -> BlobStore:
    blob_store: BlobStore = request.app.state.blob_store
    return blob_store


def get_media_processor(request: Request) -> MediaProcessor:
    media_processor: MediaProcessor = request.app.state.media_processor
    return media_processor


def get_executor(request: Request) -> Optional[Executor]:
    return getattr(request.app.state, "executor", None)


def get_app_settings() -> Settings:
    return get_settings()


async def get_ingest_service(
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store),
    media_processor: MediaProcessor = Depends(get_media_processor),
    executor: Optional[Executor] = Depends(get_executor),
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[IngestService]:
    service = IngestService(settings, blob_store, AssetRepository(session), media_processor, executor=executor)
    yield service


IngestServiceDependency = Annotated[IngestService, Depends(get_ingest_service)]


__all__ = [
    "get_session",
    "get_blob_store",
    "get_media_processor",
    "get_executor",
    "get_app_settings",
    "get_ingest_service",
    "IngestServiceDependency",
]
