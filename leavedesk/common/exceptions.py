"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

BASE_ERROR_URI = "https://leavedesk.local/errors"

logger = logging.getLogger(__name__)


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found (also used for disallowed ownership/state lookups)."""

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=detail or f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — concurrent modification or unique-constraint clash."""

    def __init__(
        self,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=detail,
            errors=errors,
        )


class DuplicateException(ConflictError):
    """409 — an entry with the same unique value already exists."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            detail=f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


# ── Leave business-rule rejections (400) ────────────────────────────

class LeaveRuleViolation(AppException):
    """400 — a leave request broke a business rule; nothing was persisted."""

    def __init__(
        self,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            status_code=400,
            error_type=error_type,
            title=title,
            detail=detail,
            errors=errors,
        )


class InvalidRangeError(LeaveRuleViolation):
    def __init__(self) -> None:
        super().__init__(
            error_type="invalid-range",
            title="Invalid Date Range",
            detail="End date must be after start date.",
            errors={"end_date": ["must be after start_date"]},
        )


class PastDateError(LeaveRuleViolation):
    def __init__(self) -> None:
        super().__init__(
            error_type="past-date",
            title="Past Date",
            detail="Cannot request leave for past dates.",
            errors={"start_date": ["must not be in the past"]},
        )


class InsufficientBalanceError(LeaveRuleViolation):
    def __init__(self, available: int, requested: int) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            error_type="insufficient-balance",
            title="Insufficient Leave Balance",
            detail=(
                f"Insufficient leave balance. Available: {available} days, "
                f"Requested: {requested} days"
            ),
            errors={"balance": {"available": available, "requested": requested}},
        )


class InvalidTransitionError(LeaveRuleViolation):
    """A decision was made on an already-decided sub-approval or request."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            error_type="invalid-transition",
            title="Invalid Transition",
            detail=detail,
        )


# ── problem+json responses ──────────────────────────────────────────

def _problem_response(
    request: Request,
    *,
    status: int,
    error_type: str,
    title: str,
    detail: str,
    errors: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{error_type}",
        "title": title,
        "status": status,
        "detail": detail,
        "instance": request.url.path,
    }
    if errors:
        body["errors"] = errors
    return JSONResponse(
        status_code=status,
        content=body,
        headers=headers,
        media_type="application/problem+json",
    )


async def _handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    elif exc.status_code == 409:
        logger.info("%s %s conflicted: %s", request.method, request.url.path, exc.detail)
    return _problem_response(
        request,
        status=exc.status_code,
        error_type=exc.error_type,
        title=exc.title,
        detail=exc.detail,
        errors=exc.errors,
    )


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Token failures and routing misses (raised as plain HTTPException)."""
    return _problem_response(
        request,
        status=exc.status_code,
        error_type=_HTTP_ERROR_TYPES.get(exc.status_code, "http-error"),
        title=HTTPStatus(exc.status_code).phrase,
        detail=str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # "body.reason" -> "reason"; keep "query.page" style for non-body params
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ())]
        if loc and loc[0] == "body":
            loc = loc[1:]
        name = ".".join(loc) or "body"
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return _problem_response(
        request,
        status=422,
        error_type="validation-error",
        title="Validation Error",
        detail="Request validation failed.",
        errors=field_errors,
    )


_HTTP_ERROR_TYPES = {
    401: "unauthorized",
    404: "not-found",
    405: "method-not-allowed",
}


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, _handle_app_exception)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
