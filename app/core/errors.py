import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppError

logger = logging.getLogger(__name__)


def envelope(data: Any = None, message: str = "OK", success: bool = True, error: Optional[str] = None) -> dict:
    """Response body shared by every route: {success, data?, message, error?}."""
    body = {"success": success, "message": message}
    if data is not None:
        body["data"] = jsonable_encoder(data)
    if error is not None:
        body["error"] = error
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
        return JSONResponse(
            envelope(data=exc.data, message=exc.message, success=False, error=exc.code),
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            envelope(
                data={"errors": jsonable_encoder(exc.errors())},
                message="Invalid request",
                success=False,
                error="validation_error",
            ),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            envelope(message=str(exc.detail), success=False, error="http_error"),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            envelope(message="Internal server error", success=False, error="internal_error"),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
