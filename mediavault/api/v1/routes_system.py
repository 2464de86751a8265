from __future__ import annotations

import magic
from fastapi import APIRouter, Depends

from mediavault.api.deps import get_app_settings
from mediavault.core.config import Settings
from mediavault.ingest.tools import tool_available

from .schemas import EnvCheckResponse, HealthResponse


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health() -> HealthResponse:
    return HealthResponse()


def _libmagic_available() -> bool:
    try:
        magic.from_buffer(b"\xff\xd8\xff", mime=True)
    except magic.MagicException:
        return False
    return True


@router.get("/admin/env-check", response_model=EnvCheckResponse, summary="Validate media toolchain")
async def env_check(settings: Settings = Depends(get_app_settings)) -> EnvCheckResponse:
    return EnvCheckResponse(
        ffmpeg=tool_available(settings.ffmpeg_binary),
        ffprobe=tool_available(settings.ffprobe_binary),
        libmagic=_libmagic_available(),
    )


__all__ = ["router"]
