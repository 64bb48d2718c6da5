"""Ledger exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

BASE_ERROR_URI = "https://hr.example.com/errors"


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
    """404 — request, balance, leave type or employee absent."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class UnauthorizedException(AppException):
    """403 — the caller lacks rights over this employee's records."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="unauthorized",
            title="Unauthorized",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures keyed by field."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class InvalidRangeException(AppException):
    """422 — missing, inverted, zero-length or otherwise unusable dates."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            error_type="invalid-range",
            title="Invalid Date Range",
            detail=detail,
            errors={"dates": [detail]},
        )


class OverlappingRequestException(AppException):
    """409 — a pending or approved request already covers part of the range."""

    def __init__(
        self,
        conflicting_request_id: uuid.UUID,
        start_date: Any,
        end_date: Any,
        status: str,
    ) -> None:
        self.conflicting_request_id = conflicting_request_id
        detail = (
            f"Leave request '{conflicting_request_id}' ({status}, "
            f"{start_date} to {end_date}) overlaps the requested dates."
        )
        super().__init__(
            status_code=409,
            error_type="overlapping-request",
            title="Overlapping Leave Request",
            detail=detail,
            errors={"conflicting_request_id": [str(conflicting_request_id)]},
        )


class InsufficientBalanceException(AppException):
    """422 — not enough available days for the requested duration."""

    def __init__(
        self,
        leave_type: str,
        available: Decimal,
        requested: Decimal,
    ) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Leave Balance",
            detail=(
                f"Insufficient {leave_type} balance. "
                f"Available: {available}, Requested: {requested}."
            ),
            errors={
                "available": [str(available)],
                "requested": [str(requested)],
            },
        )


class InvalidTransitionException(AppException):
    """409 — the operation is not legal from the request's current status."""

    def __init__(self, request_id: uuid.UUID, current_status: str, action: str) -> None:
        self.current_status = current_status
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid Status Transition",
            detail=(
                f"Cannot {action} leave request '{request_id}': "
                f"it is already {current_status}."
            ),
            errors={"status": [current_status]},
        )


class StorageException(AppException):
    """503 — the storage layer failed twice; nothing was applied."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            status_code=503,
            error_type="storage-error",
            title="Storage Unavailable",
            detail=(
                f"The {operation} operation could not be completed because the "
                "database was unavailable. No changes were applied; retry later."
            ),
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
