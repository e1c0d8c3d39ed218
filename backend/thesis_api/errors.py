"""Application error types and their FastAPI handlers.

Services raise these typed errors; `main.create_app` registers the
handlers that turn them into JSON responses of the form
`{"detail": message, "code": code}`.
"""

import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("thesis_api.errors")


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class InvalidStateError(AppError):
    code = "invalid_state"
    status_code = 409


class ValidationFailedError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class AuthenticationError(AppError):
    code = "unauthorized"
    status_code = 401


class ForbiddenError(AppError):
    code = "forbidden"
    status_code = 403


class UnsupportedMediaError(AppError):
    code = "unsupported_media_type"
    status_code = 415


class StorageError(AppError):
    code = "storage_error"
    status_code = 500


class UpstreamServiceError(AppError):
    code = "upstream_error"
    status_code = 502


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or ""


def _payload(code: str, message: str) -> dict:
    return {"detail": message, "code": code}


async def app_error_handler(request: Request, exc: AppError):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, "app_error code=%s status=%s path=%s request_id=%s: %s",
               exc.code, exc.status_code, request.url.path, _request_id(request), exc.message)
    response = JSONResponse(status_code=exc.status_code, content=_payload(exc.code, exc.message))
    rid = _request_id(request)
    if rid:
        response.headers["X-Request-ID"] = rid
    return response


async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("storage_failure path=%s request_id=%s", request.url.path, _request_id(request), exc_info=exc)
    response = JSONResponse(
        status_code=500,
        content=_payload(StorageError.code, "storage failure; please retry"),
    )
    rid = _request_id(request)
    if rid:
        response.headers["X-Request-ID"] = rid
    return response
