"""Enums and constants for HR Desk workflows."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    admin = "admin"
    hr = "hr"
    employee = "employee"


STAFF_ROLES: frozenset[UserRole] = frozenset({UserRole.admin, UserRole.hr})


# ── Onboarding ──────────────────────────────────────────────────────

class OnboardingStatus(str, enum.Enum):
    """Admission state held on the Employee (source of truth)."""

    pending = "pending"
    in_progress = "in-progress"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"


class OnboardingRecordStatus(str, enum.Enum):
    """Mirrored status on the advisory onboarding record."""

    invited = "invited"
    in_progress = "in-progress"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"


class TimelineAction(str, enum.Enum):
    invited = "invited"
    reminder_sent = "reminder_sent"
    details_submitted = "details_submitted"
    approved = "approved"
    rejected = "rejected"
    reconciled = "reconciled"


class ReviewDecision(str, enum.Enum):
    approve = "approve"
    reject = "reject"


# Employee status -> record status, used by the reconciliation pass
RECORD_STATUS_FOR: dict[OnboardingStatus, OnboardingRecordStatus] = {
    OnboardingStatus.pending: OnboardingRecordStatus.invited,
    OnboardingStatus.in_progress: OnboardingRecordStatus.in_progress,
    OnboardingStatus.submitted: OnboardingRecordStatus.submitted,
    OnboardingStatus.approved: OnboardingRecordStatus.approved,
    OnboardingStatus.rejected: OnboardingRecordStatus.rejected,
}


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    annual = "annual"
    sick = "sick"
    personal = "personal"
    maternity = "maternity"
    paternity = "paternity"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# Requests in these states block overlapping applications
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
)


# ── Helpdesk ────────────────────────────────────────────────────────

class TicketStatus(str, enum.Enum):
    open = "open"
    in_progress = "in-progress"
    resolved = "resolved"
    closed = "closed"
    cancelled = "cancelled"


class TicketPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class TicketCategory(str, enum.Enum):
    it = "it"
    hr = "hr"
    payroll = "payroll"
    facilities = "facilities"
    benefits = "benefits"
    other = "other"


TERMINAL_TICKET_STATUSES: frozenset[TicketStatus] = frozenset({
    TicketStatus.resolved,
    TicketStatus.closed,
    TicketStatus.cancelled,
})

RESOLVED_TICKET_STATUSES: frozenset[TicketStatus] = frozenset({
    TicketStatus.resolved,
    TicketStatus.closed,
})


# ── Identifier formats ──────────────────────────────────────────────

EMPLOYEE_CODE_PREFIX = "EMP"
EMPLOYEE_CODE_WIDTH = 5
EMPLOYEE_SEQUENCE = "employee"

TICKET_NUMBER_PREFIX = "TKT"
TICKET_NUMBER_WIDTH = 4
TICKET_SEQUENCE_PREFIX = "ticket"

# ── Misc constants ──────────────────────────────────────────────────

WEEKEND_DAYS = frozenset({5, 6})   # Saturday, Sunday
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """``values_callable`` for sa.Enum so the stored labels match the API values."""
    return [member.value for member in enum_cls]
