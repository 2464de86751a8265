from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from mediavault.api.v1 import get_api_router
from mediavault.core.config import get_settings
from mediavault.core.db import create_engine, create_schema, create_session_factory
from mediavault.core.logging import configure_logging, get_logger, level_from_name
from mediavault.core.storage import get_blob_store
from mediavault.errors import AssetNotFoundError, MediaVaultError, ValidationError
from mediavault.ingest.media import MediaProcessor

logger = get_logger(component="api")


async def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("upload_rejected", path=request.url.path, reason=exc.reason, message=exc.message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": exc.reason, "detail": exc.message},
    )


async def _not_found_handler(request: Request, exc: AssetNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": exc.code})


async def _internal_error_handler(request: Request, exc: MediaVaultError) -> JSONResponse:
    logger.error(
        "request_failed",
        path=request.url.path,
        code=exc.code,
        message=exc.message,
        context=exc.context,
        exc_info=exc,
    )
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "internal_error"})


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    blob_store = get_blob_store(settings)
    media_processor = MediaProcessor.from_settings(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        executor = ThreadPoolExecutor(max_workers=settings.worker_pool_size, thread_name_prefix="mediavault")
        if settings.auto_create_schema:
            await create_schema(engine)
        app.state.settings = settings
        app.state.blob_store = blob_store
        app.state.media_processor = media_processor
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.executor = executor
        try:
            yield
        finally:
            executor.shutdown(wait=True)
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(AssetNotFoundError, _not_found_handler)
    app.add_exception_handler(MediaVaultError, _internal_error_handler)

    app.include_router(get_api_router())
    return app


app = create_app()


__all__ = ["app", "create_app"]
