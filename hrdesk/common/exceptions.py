"""Workflow exception taxonomy and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://hrdesk.local/errors"


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


class DuplicateOfficialEmail(ConflictError):
    """409 — official email already registered."""

    def __init__(self, email: str) -> None:
        super().__init__("official_email", email)
        self.error_type = "duplicate-official-email"
        self.detail = f"A user already exists with official email '{email}'."


class ForbiddenException(AppException):
    """403 — acting on another principal's record without the required role."""

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


# Taxonomy name used by callers that think in workflow terms
PermissionDenied = ForbiddenException


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


class InvalidTransition(AppException):
    """409 — state machine guard violated."""

    def __init__(self, entity_type: str, current: Any, action: str) -> None:
        state = getattr(current, "value", current)
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid Transition",
            detail=f"Cannot {action} {entity_type} in state '{state}'.",
            errors={"status": [str(state)]},
        )


class InsufficientBalance(AppException):
    """422 — requested days exceed the available leave balance."""

    def __init__(self, leave_type: Any, available: int, requested: int) -> None:
        kind = getattr(leave_type, "value", leave_type)
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=(
                f"Insufficient {kind} leave balance. "
                f"Available: {available} days, Requested: {requested} days."
            ),
            errors={"balance": [f"available={available}", f"requested={requested}"]},
        )
        self.available = available
        self.requested = requested


class OverlappingRequest(AppException):
    """409 — a pending/approved leave already covers part of the range."""

    def __init__(self) -> None:
        super().__init__(
            status_code=409,
            error_type="overlapping-request",
            title="Overlapping Request",
            detail="You already have a pending or approved leave request for these dates.",
        )


class LeaveAlreadyStarted(AppException):
    """409 — approved leave whose start date has passed."""

    def __init__(self) -> None:
        super().__init__(
            status_code=409,
            error_type="leave-already-started",
            title="Leave Already Started",
            detail="Cannot cancel leave that has already started.",
        )


class AlreadyRated(AppException):
    """409 — the ticket already carries a rating."""

    def __init__(self) -> None:
        super().__init__(
            status_code=409,
            error_type="already-rated",
            title="Already Rated",
            detail="Ticket has already been rated.",
        )


class InvalidAssignee(AppException):
    """422 — tickets may only be assigned to HR or admin users."""

    def __init__(self) -> None:
        super().__init__(
            status_code=422,
            error_type="invalid-assignee",
            title="Invalid Assignee",
            detail="Tickets can only be assigned to active HR or admin users.",
        )


class OnboardingIncomplete(AppException):
    """403 — the employee has not completed onboarding."""

    def __init__(self, action: str = "continue") -> None:
        super().__init__(
            status_code=403,
            error_type="onboarding-incomplete",
            title="Onboarding Incomplete",
            detail=f"Please complete onboarding before you {action}.",
        )


class StorageFailure(AppException):
    """503 — the write did not commit; workflow state is unchanged. Retryable."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            status_code=503,
            error_type="storage-failure",
            title="Storage Failure",
            detail=f"The {operation} could not be saved. Please retry.",
        )


class PartialCommit(AppException):
    """500 — primary write committed, companion audit record did not."""

    def __init__(self, entity_type: str, entity_id: Any, pending: str) -> None:
        super().__init__(
            status_code=500,
            error_type="partial-commit",
            title="Partial Commit",
            detail=(
                f"{entity_type} '{entity_id}' was updated but the {pending} "
                "could not be written. It will be reconciled."
            ),
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


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
