"""Notification dispatch tests: best-effort delivery never fails a workflow."""

from __future__ import annotations

import logging
from datetime import date

from hrdesk.common.constants import LeaveStatus, LeaveType
from hrdesk.leave.schemas import LeaveRequestCreate
from hrdesk.leave.service import LeaveService
from hrdesk.notifications.service import (
    LogNotifier,
    Notifier,
    dispatch,
    get_notifier,
    set_notifier,
)


class _FailingNotifier(Notifier):
    async def send(self, to: str, subject: str, body: str) -> None:
        raise ConnectionError("SMTP relay unreachable")


async def test_dispatch_delivers(outbox):
    assert await dispatch("jane@acme.com", "Hello", "Body") is True
    assert outbox.sent == [("jane@acme.com", "Hello", "Body")]


async def test_dispatch_without_recipient_is_dropped(outbox, caplog):
    with caplog.at_level(logging.WARNING, logger="hrdesk.notifications.service"):
        assert await dispatch(None, "Hello", "Body") is False
    assert outbox.sent == []
    assert "no recipient" in caplog.text


async def test_dispatch_failure_is_logged_and_swallowed(caplog):
    previous = set_notifier(_FailingNotifier())
    try:
        with caplog.at_level(logging.WARNING, logger="hrdesk.notifications.service"):
            assert await dispatch("jane@acme.com", "Hello", "Body") is False
    finally:
        set_notifier(previous)
    assert "failed" in caplog.text


async def test_workflow_survives_notification_failure(db, employee, hr_user):
    previous = set_notifier(_FailingNotifier())
    try:
        leave = await LeaveService.apply_leave(
            db,
            employee.id,
            LeaveRequestCreate(
                leave_type=LeaveType.annual,
                start_date=date(2025, 1, 6),
                end_date=date(2025, 1, 6),
            ),
            today=date(2025, 1, 1),
        )
        decided = await LeaveService.update_leave_status(
            db, leave.id, LeaveStatus.approved, hr_user.id,
        )
    finally:
        set_notifier(previous)
    assert decided.status == LeaveStatus.approved


async def test_log_notifier_writes_to_log(caplog):
    previous = set_notifier(LogNotifier())
    try:
        assert isinstance(get_notifier(), LogNotifier)
        with caplog.at_level(logging.INFO, logger="hrdesk.notifications.service"):
            await dispatch("jane@acme.com", "Subject line", "Body")
    finally:
        set_notifier(previous)
    assert "Subject line" in caplog.text
