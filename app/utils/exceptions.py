"""Application errors and their HTTP mapping."""
from datetime import datetime
from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.utils.logger import logger


class AppException(Exception):
    """Base exception for application errors."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(AppException):
    """Raised when a payload is missing required fields or breaks a bound."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFoundError(AppException):
    """Raised when an identifier or slug resolves to no document."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class PersistenceError(AppException):
    """Raised when the store is unreachable or rejects a write."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "PERSISTENCE_ERROR"


def error_body(message: str, code: Optional[str] = None, path: Optional[str] = None) -> dict:
    body = {"error": message, "timestamp": datetime.utcnow().isoformat() + "Z"}
    if code:
        body["code"] = code
    if path:
        body["path"] = path
    return body


async def app_exception_handler(request: Request, exc: AppException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        message = "Internal server error" if settings.is_production else exc.message
    else:
        message = exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, exc.code, request.url.path),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', []))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(details or "Invalid request", ValidationError.code, request.url.path),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body("Route not found", path=request.url.path),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), path=request.url.path),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    message = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(message),
    )


def register_exception_handlers(app):
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
