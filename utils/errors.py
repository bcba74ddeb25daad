"""Error kinds the API can fail with and the handlers that render them."""

import logfire

from enum import Enum

from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .responses import error_response


class ErrorKind(str, Enum):
    """Failure kinds. Each one maps to exactly one HTTP status code."""

    VALIDATION = "validation_error"
    UNAUTHORIZED = "unauthorized"
    INVALID_TOKEN = "invalid_token"
    TOKEN_EXPIRED_OR_REUSED = "token_expired_or_reused"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal_error"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.TOKEN_EXPIRED_OR_REUSED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ApiError(Exception):
    """Raised by dependencies, which cannot return a response themselves."""

    def __init__(self, kind: ErrorKind, message: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.headers = headers


def kind_response(kind: ErrorKind, message: str, headers: Optional[Dict[str, str]] = None):
    """Build the error envelope for `kind`. 401-class kinds get a `WWW-Authenticate` header."""
    if kind.status_code == status.HTTP_401_UNAUTHORIZED and headers is None:
        headers = {"WWW-Authenticate": "Bearer"}
    return error_response(kind.status_code, message, headers=headers)


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = str(first.get("msg", "Invalid value"))
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as the error envelope."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return kind_response(exc.kind, exc.message, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message = _first_validation_message(exc)
        logfire.info(f"Rejected invalid request to {request.url.path}: {message}")
        return kind_response(ErrorKind.VALIDATION, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logfire.error(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")
        return kind_response(ErrorKind.INTERNAL, "An unexpected error occurred")
