from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from lendflow.core.settings import settings

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Typed failure raised by the ledgers and mapped to an HTTP response at the API boundary."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, *, errors: list[Any] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationFailed(DomainError):
    status_code = 400
    default_message = "Validation failed"


class InvalidTransition(DomainError):
    status_code = 400
    default_message = "Invalid status transition"


class Unauthenticated(DomainError):
    status_code = 401
    default_message = "Invalid or missing token"


class Forbidden(DomainError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFound(DomainError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(DomainError):
    status_code = 409
    default_message = "Conflict"

    def __init__(self, message: str | None = None, *, field: str | None = None, **kwargs) -> None:
        self.field = field
        super().__init__(message, **kwargs)


class AlreadyDecided(Conflict):
    default_message = "A decision has already been recorded"


class PayloadTooLarge(DomainError):
    status_code = 413
    default_message = "Payload too large"


class UnsupportedMediaType(DomainError):
    status_code = 415
    default_message = "Unsupported media type"


class LockedOut(DomainError):
    status_code = 429
    default_message = "Too many attempts; try later"


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _build_response(
    request: Request,
    status_code: int,
    message: str,
    errors: Any | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {
        "success": False,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
        "message": message,
        "statusCode": status_code,
    }
    if errors:
        payload["errors"] = errors
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload), headers=headers)


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    errors: list[dict[str, str]] = []
    for error in exc.errors():
        loc = error.get("loc") or []
        # Drop the request section (body/query/path) from the location
        field = ".".join(str(part) for part in loc if part not in {"body", "query", "path"})
        errors.append({"field": field, "message": str(error.get("msg") or "Invalid value")})
    return errors


async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
    errors = exc.errors
    if errors is None and isinstance(exc, Conflict) and exc.field:
        errors = [{"field": exc.field, "message": exc.message}]
    return _build_response(request, exc.status_code, exc.message, errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str) and detail:
        message = detail
    elif isinstance(detail, dict):
        message = detail.get("message") or detail.get("detail") or _default_message(exc.status_code)
    else:
        message = _default_message(exc.status_code)
    if exc.status_code == 401:
        message = Unauthenticated.default_message
    return _build_response(request, exc.status_code, message, headers=getattr(exc, "headers", None))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = _field_errors(exc)
    logger.warning("Validation failed path=%s errors=%s", request.url.path, errors)
    return _build_response(request, 400, "Validation failed", errors)


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _build_response(request, 429, _default_message(429))
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if settings.is_production:
        return _build_response(request, 500, "Internal server error")
    return _build_response(request, 500, str(exc) or "Internal server error", [repr(exc)])


def register_exception_handlers(app) -> None:
    app.add_exception_handler(DomainError, domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
