"""Error taxonomy shared by the policy core, services and HTTP handlers.

Every failure the service can report falls into one of a handful of kinds.
The HTTP layer maps each kind onto a status code and renders the standard
response envelope::

    {"success": false, "message": "...", "error": {"kind": "...", "message": "...", "details": {...}}}
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    CONFLICT = "conflict"
    DEPENDENCY_FAILURE = "dependency_failure"
    INTERNAL_ERROR = "internal_error"


class AppError(Exception):
    """Base class for all expected application failures."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    """Missing or malformed input the caller can correct."""

    kind = ErrorKind.VALIDATION_ERROR
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT

    def __init__(self, message: str, *, fields: list[str] | None = None) -> None:
        super().__init__(message, details={"fields": fields} if fields else None)
        self.fields = fields or []


class NotFound(AppError):
    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(AppError):
    """Access denied. Never carries the rule that failed."""

    kind = ErrorKind.FORBIDDEN
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self) -> None:
        super().__init__("Access denied.")


class Unauthorized(AppError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidStateTransition(AppError):
    kind = ErrorKind.INVALID_STATE_TRANSITION
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, *, entity: str, current_status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} {entity} in status '{current_status}'.",
            details={"entity": entity, "current_status": current_status, "action": action},
        )
        self.entity = entity
        self.current_status = current_status
        self.action = action


class Conflict(AppError):
    kind = ErrorKind.CONFLICT
    status_code = status.HTTP_409_CONFLICT


class DependencyFailure(AppError):
    """An external collaborator failed. Detail goes to logs, not to the caller."""

    kind = ErrorKind.DEPENDENCY_FAILURE
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, dependency: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"Upstream {dependency} service failed.")
        self.dependency = dependency
        self.cause = cause


def success_response(data: Any = None, *, message: str | None = None, **extra: Any) -> dict[str, Any]:
    """Build the standard success envelope."""

    body: dict[str, Any] = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    body.update(extra)
    return body


def error_response(
    *,
    kind: ErrorKind,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {"kind": kind.value, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error": error},
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, DependencyFailure):
        logger.error(
            "Dependency failure (%s) on %s %s",
            exc.dependency,
            request.method,
            request.url.path,
            exc_info=exc.cause,
        )
    else:
        logger.info("%s on %s %s: %s", exc.kind.value, request.method, request.url.path, exc.message)

    return error_response(
        kind=exc.kind,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind_map = {
        status.HTTP_401_UNAUTHORIZED: ErrorKind.UNAUTHORIZED,
        status.HTTP_403_FORBIDDEN: ErrorKind.FORBIDDEN,
        status.HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND,
        status.HTTP_409_CONFLICT: ErrorKind.CONFLICT,
        status.HTTP_422_UNPROCESSABLE_CONTENT: ErrorKind.VALIDATION_ERROR,
    }
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return error_response(
        kind=kind_map.get(exc.status_code, ErrorKind.INTERNAL_ERROR),
        message=message,
        status_code=exc.status_code,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return error_response(
        kind=ErrorKind.VALIDATION_ERROR,
        message="Request validation failed.",
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        details={"fields": [item["field"] for item in errors], "errors": errors},
    )


def classify_integrity_error(exc: IntegrityError) -> tuple[ErrorKind, str, int]:
    """Map a driver constraint violation onto an error kind, message and status."""

    text = str(exc.orig).lower()
    if "unique" in text or "duplicate" in text:
        return ErrorKind.CONFLICT, "A record with this value already exists.", status.HTTP_409_CONFLICT
    if "foreign key" in text:
        return ErrorKind.CONFLICT, "The record is referenced by or refers to another record.", status.HTTP_409_CONFLICT
    if "check constraint" in text or "not null" in text or "not-null" in text:
        return (
            ErrorKind.VALIDATION_ERROR,
            "A value violates a data constraint.",
            status.HTTP_422_UNPROCESSABLE_CONTENT,
        )
    return ErrorKind.CONFLICT, "The change conflicts with existing data.", status.HTTP_409_CONFLICT


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    if isinstance(exc, IntegrityError):
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        kind, message, status_code = classify_integrity_error(exc)
        return error_response(kind=kind, message=message, status_code=status_code)

    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(
        kind=ErrorKind.DEPENDENCY_FAILURE,
        message="Upstream database service failed.",
        status_code=status.HTTP_502_BAD_GATEWAY,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(
        kind=ErrorKind.INTERNAL_ERROR,
        message="An unexpected error occurred.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
