# routes/library.py
from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from typing import Annotated, List

from app.core.logging import get_logger
from app.core.resources import get_importer, get_library_service, get_owner_id
from library.importer import Importer
from library.models import IngestReport, SeriesOut, TitleUpdate, VolumeOut
from library.service import LibraryService

router = APIRouter(prefix="/library", tags=["library"])
logger = get_logger(__name__)

Owner = Annotated[str, Depends(get_owner_id)]
Service = Annotated[LibraryService, Depends(get_library_service)]


@router.get("", response_model=List[SeriesOut])  # GET /api/library
async def get_library(owner_id: Owner, service: Service):
    return await run_in_threadpool(service.list_library, owner_id)


# POST /api/library/upload  (multipart, filename = <serie>/[<volume>/]<nom>.<ext>)
# Corps lu en flux : pas de FormData, pas de plafond sur le nombre de parts.
@router.post(
    "/upload",
    status_code=201,
    response_model=IngestReport,
    openapi_extra={"requestBody": {"required": True, "content": {"multipart/form-data": {"schema": {
        "type": "object",
        "properties": {"files": {"type": "array", "items": {"type": "string", "format": "binary"}}},
    }}}}},
)
async def upload_volumes(
    request: Request,
    owner_id: Owner,
    importer: Annotated[Importer, Depends(get_importer)],
):
    logger.info("POST:upload:start")
    report = await importer.import_stream(
        owner_id=owner_id,
        content_type=request.headers.get("content-type"),
        chunks=request.stream(),
    )
    logger.info("POST:upload:end processed=%d skipped=%d", report.processed, report.skipped)
    return report


@router.put("/series/{series_id}/cover", response_model=SeriesOut)
async def replace_series_cover(series_id: str, owner_id: Owner, service: Service,
                               file: Annotated[UploadFile, File(...)]):
    return await service.replace_cover(owner_id, series_id, file)


@router.patch("/series/{series_id}", response_model=SeriesOut)
async def rename_series(series_id: str, body: TitleUpdate, owner_id: Owner, service: Service):
    return await run_in_threadpool(service.rename_series, owner_id, series_id, body.title)


@router.patch("/volumes/{volume_id}", response_model=VolumeOut)
async def rename_volume(volume_id: str, body: TitleUpdate, owner_id: Owner, service: Service):
    return await run_in_threadpool(service.rename_volume, owner_id, volume_id, body.title)


@router.delete("/series/{series_id}", status_code=204)
async def delete_series(series_id: str, owner_id: Owner, service: Service):
    await run_in_threadpool(service.delete_series, owner_id, series_id)
    return Response(status_code=204)


@router.delete("/volumes/{volume_id}", status_code=204)
async def delete_volume(volume_id: str, owner_id: Owner, service: Service):
    await run_in_threadpool(service.delete_volume, owner_id, volume_id)
    return Response(status_code=204)
