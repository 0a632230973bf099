# app/core/errors.py
# Erreurs → réponses JSON {statusCode, error, message}
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from library.errors import LibraryError
from .logging import get_logger

log = get_logger(__name__)

_REASONS = {400: "Bad Request", 401: "Unauthorized", 404: "Not Found",
            405: "Method Not Allowed", 422: "Unprocessable Entity", 500: "Internal Server Error"}


def error_body(status_code: int, message: str, error: str | None = None) -> dict:
    return {
        "statusCode": status_code,
        "error": error or _REASONS.get(status_code, "Error"),
        "message": message,
    }


async def library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        message = "Could not complete the request."
    else:
        log.info("%s %s rejected: %s", request.method, request.url.path, exc)
        message = str(exc)
    return JSONResponse(error_body(exc.status_code, message, exc.error), status_code=exc.status_code)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(error_body(exc.status_code, message), status_code=exc.status_code,
                        headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("%s %s crashed", request.method, request.url.path)
    return JSONResponse(error_body(HTTP_500_INTERNAL_SERVER_ERROR, "Unexpected server error."),
                        status_code=HTTP_500_INTERNAL_SERVER_ERROR)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LibraryError, library_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
