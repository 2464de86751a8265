from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, File, Query, Response, UploadFile, status
from fastapi.responses import FileResponse

from mediavault.api import deps
from mediavault.db.models import AssetKind
from mediavault.errors import ValidationError
from mediavault.services.asset_repository import AssetMetadata
from mediavault.services.ingest_service import IngestResult

from . import schemas


router = APIRouter(prefix="/assets", tags=["assets"])


def _metadata_response(metadata: AssetMetadata) -> schemas.AssetMetadataResponse:
    return schemas.AssetMetadataResponse(
        image=schemas.ImageMetadataModel.model_validate(metadata.image) if metadata.image else None,
        video=schemas.VideoMetadataModel.model_validate(metadata.video) if metadata.video else None,
    )


def _detail_response(result: IngestResult) -> schemas.AssetDetailResponse:
    summary = schemas.AssetResponse.model_validate(result.asset)
    return schemas.AssetDetailResponse(**summary.model_dump(), metadata=_metadata_response(result.metadata))


@router.post(
    "",
    response_model=schemas.IngestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"model": schemas.IngestResponse, "description": "Identical content was already stored."}},
)
async def upload_asset(
    service: deps.IngestServiceDependency,
    response: Response,
    file: Optional[UploadFile] = File(default=None),
) -> schemas.IngestResponse:
    if file is None:
        raise ValidationError("no_file", "a multipart field named 'file' is required")
    try:
        result = await service.ingest(file.file, original_name=file.filename, declared_size=file.size)
    finally:
        await file.close()

    if result.duplicate:
        response.status_code = status.HTTP_200_OK
    return schemas.IngestResponse(duplicate=result.duplicate, asset=_detail_response(result))


@router.get("", response_model=schemas.AssetListResponse)
async def list_assets(
    service: deps.IngestServiceDependency,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    kind: Optional[AssetKind] = Query(default=None, alias="type"),
) -> schemas.AssetListResponse:
    page = await service.list_assets(limit=limit, offset=offset, kind=kind)
    return schemas.AssetListResponse(
        items=[schemas.AssetResponse.model_validate(asset) for asset in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/{asset_id}", response_model=schemas.AssetDetailResponse)
async def get_asset(asset_id: int, service: deps.IngestServiceDependency) -> schemas.AssetDetailResponse:
    result = await service.get_asset(asset_id)
    return _detail_response(result)


@router.get("/{asset_id}/metadata", response_model=schemas.AssetMetadataResponse)
async def get_asset_metadata(asset_id: int, service: deps.IngestServiceDependency) -> schemas.AssetMetadataResponse:
    result = await service.get_asset(asset_id)
    return _metadata_response(result.metadata)


@router.get("/{asset_id}/file", response_class=FileResponse)
async def download_original(asset_id: int, service: deps.IngestServiceDependency) -> FileResponse:
    asset, path = await service.resolve_blob(asset_id)
    return FileResponse(path, media_type=asset.mime_type, filename=asset.original_name)


@router.get("/{asset_id}/thumbnail", response_class=FileResponse)
async def download_thumbnail(asset_id: int, service: deps.IngestServiceDependency) -> FileResponse:
    _, path = await service.resolve_blob(asset_id, thumbnail=True)
    return FileResponse(path, media_type="image/jpeg")


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(asset_id: int, service: deps.IngestServiceDependency) -> Response:
    await service.delete_asset(asset_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
