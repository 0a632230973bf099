from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from adapters.db.base import LibraryRepository
from app.core.logging import get_logger
from app.core.resources import get_repository
from library.errors import RepositoryError

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

@router.get("") # GET : /api/health
async def health_check(repository: LibraryRepository = Depends(get_repository)):
    try:
        await run_in_threadpool(repository.ping)
    except RepositoryError:
        logger.exception("health check: database unreachable")
        return JSONResponse({"status": "error", "db": "disconnected"}, status_code=500)
    return {"status": "ok", "db": "connected"}
