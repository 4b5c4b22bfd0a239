"""
Application error taxonomy and global exception handlers.

Services raise the ``AppError`` subclasses below; the handlers translate
them into JSON responses and keep stack traces away from clients.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Error taxonomy ──────────────────────────────────────────────────
class AppError(Exception):
    """Base class for every domain error.

    ``code`` is a machine-readable identifier such as ``UserNotFound``;
    subclasses build it from an entity name and their own ``kind``.
    """

    kind: str = ""
    status_code: int = 500

    def __init__(self, entity: str, message: str) -> None:
        super().__init__(message)
        self.code = f"{entity}{self.kind}"
        self.message = message


class NotFoundError(AppError):
    kind = "NotFound"
    status_code = 404


class AlreadyExistsError(AppError):
    kind = "AlreadyExists"
    status_code = 409


class NotAuthorizedError(AppError):
    kind = "NotAuthorized"
    status_code = 401


class ForbiddenError(AppError):
    kind = "Forbidden"
    status_code = 403


class InvalidArgumentError(AppError):
    kind = "InvalidArgument"
    status_code = 400


class ServerError(AppError):
    """Infrastructure failure: hashing, transactions, email, file I/O."""

    status_code = 500

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message)


class AppValidationError(AppError):
    """Structured validation failure carrying per-field messages."""

    kind = "ValidationError"
    status_code = 400

    def __init__(
        self,
        entity: str,
        field_errors: dict[str, list[str]],
        form_errors: list[str] | None = None,
    ) -> None:
        super().__init__(entity, f"{entity} validation failed")
        self.field_errors = field_errors
        self.form_errors = form_errors or []


def field_errors_from(errors: list[dict[str, Any]]) -> dict[str, list[str]]:
    """Group pydantic error dicts by dotted field location."""
    grouped: dict[str, list[str]] = {}
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "form")]
        grouped.setdefault(".".join(loc) or "__root__", []).append(err.get("msg", "Invalid value"))
    return grouped


# ── Handlers ────────────────────────────────────────────────────────
def _error_body(code: str, detail: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "code": code, "detail": detail, **extra}


async def _app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[%s] %s", exc.code, exc.message, exc_info=exc)
    else:
        logger.warning("[%s] %s", exc.code, exc.message)

    extra: dict[str, Any] = {}
    if isinstance(exc, AppValidationError):
        extra = {"field_errors": exc.field_errors, "form_errors": exc.form_errors}
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, **extra),
        headers=headers,
    )


async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    field_errors = field_errors_from(list(exc.errors()))
    logger.warning("[ValidationError] %s", field_errors)
    return JSONResponse(
        status_code=400,
        content=_error_body(
            "ValidationError", "Request validation failed", field_errors=field_errors
        ),
    )


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("HttpError", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _rate_limit_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content=_error_body("RateLimitExceeded", f"Too many requests: {exc.detail}"),
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content=_error_body("ObjectAlreadyExists", "Duplicate value for unique field"),
    )


async def _operational_error_handler(_request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=503,
        content=_error_body("DatabaseUnavailable", "Error connecting to the database server"),
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content=_error_body("DatabaseError", "Internal database error"),
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content=_error_body("InternalServerError", "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(AppError, _app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(OperationalError, _operational_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
