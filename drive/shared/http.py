import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from drive.shared.config import settings
from drive.shared.errors import DriveError

logger = logging.getLogger(__name__)

def error_response(message: str, status: int = 400, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})

def _validation_message(exc: RequestValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "Invalid request"
    first = errs[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))

def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DriveError)
    async def _drive_error(request: Request, exc: DriveError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc.message, exc.status_code)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return error_response(detail, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return error_response(_validation_message(exc), 400)

    # dev shows the real error text; prod keeps it in the log
    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        msg = str(exc) if settings.ENV == "dev" else "Internal server error"
        return error_response(msg, 500)
