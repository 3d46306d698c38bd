"""
Structured API errors

Every error leaving the API has the shape
{"error": {"code": "...", "message": "...", "details": ...}}.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """Base class for errors surfaced to API clients with a machine-readable code"""

    code = "INTERNAL_ERROR"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        headers: Optional[dict] = None,
    ):
        super().__init__(status_code=status_code or self.status_code_default, detail=message, headers=headers)
        if code:
            self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    code = "VALIDATION_ERROR"
    status_code_default = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(ApiError):
    code = "UNAUTHORIZED"
    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", details: Optional[Any] = None):
        super().__init__(message, details, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(ApiError):
    code = "FORBIDDEN"
    status_code_default = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "You do not have permission to perform this action", details=None):
        super().__init__(message, details)


class NotFoundError(ApiError):
    code = "NOT_FOUND"
    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(ApiError):
    code = "CONFLICT"
    status_code_default = status.HTTP_409_CONFLICT


class RateLimitError(ApiError):
    code = "RATE_LIMITED"
    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, retry_after: int, message: str = "Too many requests. Please try again later."):
        super().__init__(message, {"retryAfter": retry_after}, headers={"Retry-After": str(retry_after)})


class ExternalProviderError(ApiError):
    """A third-party provider (Zoom, email, WhatsApp, holidays) failed or is unreachable"""

    code = "EXTERNAL_PROVIDER_ERROR"
    status_code_default = status.HTTP_502_BAD_GATEWAY

    def __init__(self, provider: str, message: str, details: Optional[Any] = None):
        super().__init__(f"{provider}: {message}", details)
        self.provider = provider


def _error_response(status_code: int, body: dict, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": body}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers mapping every failure to the structured error body"""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error(f"❌ {exc.code} on {request.method} {request.url.path}: {exc.message}")
        return _error_response(exc.status_code, exc.to_dict(), exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err.get("loc", []) if part != "body"),
                "message": err.get("msg"),
                "code": err.get("type"),
            }
            for err in exc.errors()
        ]
        logger.warning(f"⚠️ Validation error on {request.method} {request.url.path}: {details}")
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            {"code": "VALIDATION_ERROR", "message": "Invalid request data", "details": details},
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"⚠️ Integrity error on {request.method} {request.url.path}: {exc.orig}")
        return _error_response(
            status.HTTP_409_CONFLICT,
            {"code": "CONFLICT", "message": "A record with these values already exists"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = {
            401: "UNAUTHORIZED",
            403: "FORBIDDEN",
            404: "NOT_FOUND",
            405: "METHOD_NOT_ALLOWED",
            409: "CONFLICT",
            429: "RATE_LIMITED",
        }.get(exc.status_code, "VALIDATION_ERROR" if exc.status_code < 500 else "INTERNAL_ERROR")
        return _error_response(
            exc.status_code, {"code": code, "message": str(exc.detail)}, getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
        )
