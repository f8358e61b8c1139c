"""Outbound notifications: pluggable notifier and cross-module helper dispatchers.

Every helper goes through ``dispatch``, which logs and swallows delivery
failures. A notification never rolls back or fails the workflow step that
triggered it.
"""

from __future__ import annotations

import logging
from typing import Optional

from hrdesk.config import settings

logger = logging.getLogger(__name__)


# ── Notifier backends ───────────────────────────────────────────────


class Notifier:
    """Delivery backend. Subclasses send one message to one address."""

    async def send(self, to: str, subject: str, body: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Writes outbound messages to the log instead of a mail server."""

    async def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Mail from=%s to=%s subject=%r\n%s", settings.MAIL_FROM, to, subject, body)


_notifier: Notifier = LogNotifier()


def get_notifier() -> Notifier:
    return _notifier


def set_notifier(notifier: Notifier) -> Notifier:
    """Install a notifier backend; returns the previous one."""
    global _notifier
    previous, _notifier = _notifier, notifier
    return previous


async def dispatch(to: Optional[str], subject: str, body: str) -> bool:
    """Send best-effort. Returns False when the message was not delivered."""
    if not to:
        logger.warning("Dropping notification %r: no recipient address", subject)
        return False
    try:
        await _notifier.send(to, subject, body)
    except Exception:
        logger.warning("Notification %r to %s failed", subject, to, exc_info=True)
        return False
    return True


# ── Onboarding helpers ──────────────────────────────────────────────


async def notify_onboarding_invitation(
    employee,  # hrdesk.onboarding.models.Employee
    temporary_password: Optional[str],
    *,
    reminder: bool = False,
) -> bool:
    """Send the login (and temporary password, if any) to the personal address."""
    subject = "Reminder: complete your onboarding" if reminder else "Welcome aboard"
    body = f"Login: {employee.official_email}\n"
    if temporary_password:
        body += f"Temporary password: {temporary_password}\n"
    body += f"\nComplete your onboarding at {settings.FRONTEND_URL}/onboarding"
    return await dispatch(employee.personal_email, subject, body)


async def notify_onboarding_submitted(employee) -> bool:
    """Tell HR a new hire is waiting for review."""
    return await dispatch(
        settings.HR_EMAIL,
        "Onboarding submitted for review",
        f"{employee.full_name} ({employee.official_email}) has submitted "
        f"onboarding details.",
    )


async def notify_onboarding_approved(employee) -> bool:
    return await dispatch(
        employee.official_email,
        "Onboarding approved",
        f"Welcome {employee.full_name}! Your employee code is "
        f"{employee.employee_code}.",
    )


async def notify_onboarding_rejected(employee, remarks: Optional[str]) -> bool:
    return await dispatch(
        employee.official_email,
        "Onboarding needs changes",
        f"Your onboarding details were returned for correction.\n\n"
        f"Remarks: {remarks or '-'}",
    )


# ── Leave helpers ───────────────────────────────────────────────────


async def notify_leave_request(leave_request, employee) -> bool:
    """Notify HR of a new pending leave request."""
    return await dispatch(
        settings.HR_EMAIL,
        "New leave request",
        f"{employee.full_name} requested {leave_request.total_days} day(s) of "
        f"{leave_request.leave_type.value} leave from {leave_request.start_date} "
        f"to {leave_request.end_date}.",
    )


async def notify_leave_decision(leave_request, employee) -> bool:
    """Notify the employee that their leave request was approved or rejected."""
    status = leave_request.status.value
    body = (
        f"Your leave request from {leave_request.start_date} to "
        f"{leave_request.end_date} has been {status}."
    )
    if leave_request.rejection_reason:
        body += f"\n\nReason: {leave_request.rejection_reason}"
    return await dispatch(employee.official_email, f"Leave request {status}", body)


# ── Helpdesk helpers ────────────────────────────────────────────────


async def notify_ticket_created(ticket, employee) -> bool:
    return await dispatch(
        settings.HR_EMAIL,
        f"New ticket {ticket.ticket_number}",
        f"{employee.full_name} opened a {ticket.priority.value} priority "
        f"{ticket.category.value} ticket: {ticket.subject}",
    )


async def notify_ticket_assigned(ticket, assignee_email: str) -> bool:
    return await dispatch(
        assignee_email,
        f"Ticket {ticket.ticket_number} assigned to you",
        f"{ticket.subject}\n\nPriority: {ticket.priority.value}",
    )


async def notify_ticket_updated(ticket, employee) -> bool:
    """Notify the ticket owner of a status change."""
    body = f"Your ticket {ticket.ticket_number} is now {ticket.status.value}."
    if ticket.resolution:
        body += f"\n\nResolution: {ticket.resolution}"
    return await dispatch(
        employee.official_email,
        f"Ticket {ticket.ticket_number} updated",
        body,
    )
