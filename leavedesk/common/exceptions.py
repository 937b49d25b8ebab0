"""Engine exceptions and RFC 7807 Problem Detail error handlers.

Business-rule failures are non-retryable without caller-side correction;
``StorageFailure`` is the only retryable kind.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://leavedesk.dev/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all engine exceptions → RFC 7807 JSON."""

    retryable: bool = False

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
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
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


# ── Leave lifecycle errors ──────────────────────────────────────────

class InvalidRangeError(AppException):
    """422 — start date after end date."""

    def __init__(self, start: Any, end: Any) -> None:
        super().__init__(
            status_code=422,
            error_type="invalid-range",
            title="Invalid Date Range",
            detail=f"Start date {start} is after end date {end}.",
            errors={"start_date": ["Start date cannot be after end date."]},
        )


class InsufficientBalanceError(AppException):
    """422 — not enough remaining days (or no balance row at all)."""

    def __init__(self, leave_type: str, year: int, requested: Decimal) -> None:
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Leave Balance",
            detail=(
                f"Insufficient balance for leave type '{leave_type}' in {year}: "
                f"{requested} day(s) requested."
            ),
            errors={"balance": [f"{requested} day(s) exceed the remaining balance."]},
        )


class OverlappingRequestError(AppException):
    """409 — the range intersects a pending or approved request."""

    def __init__(self, start: Any, end: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="overlapping-request",
            title="Overlapping Leave Request",
            detail=(
                f"A pending or approved leave request already overlaps "
                f"{start} – {end}."
            ),
        )


class AlreadyProcessedError(AppException):
    """409 — the request has left the pending state."""

    def __init__(self, request_id: Any, status: Any) -> None:
        status_value = getattr(status, "value", status)
        super().__init__(
            status_code=409,
            error_type="already-processed",
            title="Leave Request Already Processed",
            detail=f"Leave request '{request_id}' is already {status_value}.",
        )


class MissingReasonError(AppException):
    """422 — a rejection must carry a reason."""

    def __init__(self) -> None:
        super().__init__(
            status_code=422,
            error_type="missing-reason",
            title="Rejection Reason Required",
            detail="A rejection reason is required to reject a leave request.",
            errors={"rejection_reason": ["This field is required."]},
        )


class StorageFailure(AppException):
    """503 — the persistence layer failed; safe to retry."""

    retryable = True

    def __init__(self, operation: str) -> None:
        super().__init__(
            status_code=503,
            error_type="storage-failure",
            title="Storage Failure",
            detail=f"The data store failed during '{operation}'. Retry the operation.",
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
        "retryable": exc.retryable,
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
        headers=headers,
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
            "retryable": False,
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called by the host application) ───────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach the engine's exception handlers to a FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
