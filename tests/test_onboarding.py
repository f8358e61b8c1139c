"""Onboarding pipeline tests: invite, self-submission, HR review,
employee codes, record reconciliation and API endpoints.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hrdesk.auth.models import User
from hrdesk.common.audit import get_audit_entries
from hrdesk.common.constants import (
    LeaveType,
    OnboardingRecordStatus,
    OnboardingStatus,
    ReviewDecision,
    TimelineAction,
)
from hrdesk.common.exceptions import (
    DuplicateOfficialEmail,
    InvalidTransition,
    NotFoundException,
    PartialCommit,
    StorageFailure,
)
from hrdesk.leave.models import LeaveBalance
from hrdesk.onboarding.models import OnboardingRecord, is_invitation_expired
from hrdesk.onboarding.schemas import (
    AddressSchema,
    EmployeeUpdate,
    OnboardingDetailsSubmit,
    OnboardingInviteCreate,
)
from hrdesk.onboarding.service import OnboardingService, format_employee_code


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


def _invite(
    official_email: str = "e@co.com",
    personal_email: str = "eve.personal@gmail.com",
    name: str = "Eve Stone",
    **kwargs,
) -> OnboardingInviteCreate:
    return OnboardingInviteCreate(
        name=name,
        personal_email=personal_email,
        official_email=official_email,
        **kwargs,
    )


def _details(**overrides) -> OnboardingDetailsSubmit:
    data = dict(first_name="Eve", last_name="Stone", phone="+15550100")
    data.update(overrides)
    return OnboardingDetailsSubmit(**data)


async def _invited(db, hr_user, **kwargs):
    employee, record = await OnboardingService.initiate_onboarding(
        db, _invite(**kwargs), hr_user.id,
    )
    return employee, record


async def _submitted(db, hr_user, **kwargs):
    employee, _ = await _invited(db, hr_user, **kwargs)
    await OnboardingService.submit_onboarding_details(db, employee.id, _details())
    return employee


async def _timeline_actions(db, employee_id) -> list[TimelineAction]:
    record = await OnboardingService.get_onboarding_status(db, employee_id)
    return [entry.action for entry in record.timeline]


# ═════════════════════════════════════════════════════════════════════
# Pure helpers
# ═════════════════════════════════════════════════════════════════════


def test_employee_code_is_zero_padded():
    assert format_employee_code(1) == "EMP00001"
    assert format_employee_code(12345) == "EMP12345"


# ═════════════════════════════════════════════════════════════════════
# Invite
# ═════════════════════════════════════════════════════════════════════


async def test_initiate_creates_pending_employee_and_record(db, hr_user, outbox):
    employee, record = await _invited(db, hr_user, temporary_password="Welcome#2025")

    assert employee.onboarding_status == OnboardingStatus.pending
    assert employee.employee_code is None
    assert employee.official_email == "e@co.com"

    assert record.status == OnboardingRecordStatus.invited
    assert record.initiated_by == hr_user.id
    assert record.expires_at - record.invitation_sent_at == timedelta(days=7)
    assert await _timeline_actions(db, employee.id) == [TimelineAction.invited]

    user = await db.get(User, employee.user_id)
    assert user.email == "e@co.com"
    assert user.is_onboarded is False

    result = await db.execute(
        select(LeaveBalance.leave_type, LeaveBalance.allotted).where(
            LeaveBalance.employee_id == employee.id,
        )
    )
    balances = dict(result.all())
    assert set(balances) == set(LeaveType)
    assert balances[LeaveType.annual] == 21

    [(to, subject, body)] = outbox.to("eve.personal@gmail.com")
    assert subject == "Welcome aboard"
    assert "Welcome#2025" in body


async def test_initiate_generates_password_when_missing(db, hr_user, outbox):
    await _invited(db, hr_user)
    [(_, _, body)] = outbox.to("eve.personal@gmail.com")
    assert "Temporary password:" in body


async def test_duplicate_official_email_rejected(db, hr_user):
    await _invited(db, hr_user)
    with pytest.raises(DuplicateOfficialEmail):
        await _invited(db, hr_user, official_email="E@CO.COM", personal_email="x@gmail.com")

    result = await db.execute(select(func.count()).select_from(OnboardingRecord))
    assert result.scalar_one() == 1


# ═════════════════════════════════════════════════════════════════════
# Submit
# ═════════════════════════════════════════════════════════════════════


async def test_submit_moves_to_submitted(db, hr_user, outbox):
    employee, _ = await _invited(db, hr_user)
    await OnboardingService.submit_onboarding_details(
        db, employee.id, _details(address=AddressSchema(city="Pune")),
    )

    assert employee.onboarding_status == OnboardingStatus.submitted
    assert employee.onboarding_submitted_at is not None
    assert employee.first_name == "Eve"
    assert employee.address == {"city": "Pune"}

    user = await db.get(User, employee.user_id)
    assert user.is_onboarded is True

    record = await OnboardingService.get_onboarding_status(db, employee.id)
    assert record.status == OnboardingRecordStatus.submitted
    assert record.submitted_payload["first_name"] == "Eve"
    assert [e.action for e in record.timeline] == [
        TimelineAction.invited,
        TimelineAction.details_submitted,
    ]
    assert outbox.to("hr@hrdesk.local")


async def test_submit_twice_is_invalid(db, hr_user):
    employee = await _submitted(db, hr_user)
    with pytest.raises(InvalidTransition):
        await OnboardingService.submit_onboarding_details(db, employee.id, _details())


async def test_submit_unknown_employee(db):
    with pytest.raises(NotFoundException):
        await OnboardingService.submit_onboarding_details(db, uuid.uuid4(), _details())


# ═════════════════════════════════════════════════════════════════════
# Review
# ═════════════════════════════════════════════════════════════════════


async def test_reject_resubmit_approve_cycle(db, hr_user, outbox):
    employee = await _submitted(db, hr_user)

    await OnboardingService.review_onboarding(
        db, employee.id, ReviewDecision.reject, hr_user.id, "missing ID",
    )
    employee = await OnboardingService.get_employee(db, employee.id)
    assert employee.onboarding_status == OnboardingStatus.rejected
    assert employee.onboarding_remarks == "missing ID"
    assert employee.employee_code is None
    assert "missing ID" in outbox.to("e@co.com")[-1][2]

    await OnboardingService.submit_onboarding_details(db, employee.id, _details())
    assert employee.onboarding_status == OnboardingStatus.submitted

    await OnboardingService.review_onboarding(
        db, employee.id, ReviewDecision.approve, hr_user.id,
    )
    assert employee.onboarding_status == OnboardingStatus.approved
    assert employee.employee_code == "EMP00001"
    assert employee.onboarding_approved_by == hr_user.id

    assert await _timeline_actions(db, employee.id) == [
        TimelineAction.invited,
        TimelineAction.details_submitted,
        TimelineAction.rejected,
        TimelineAction.details_submitted,
        TimelineAction.approved,
    ]
    record = await OnboardingService.get_onboarding_status(db, employee.id)
    assert record.status == OnboardingRecordStatus.approved


async def test_second_review_fails_and_keeps_code(db, hr_user):
    employee = await _submitted(db, hr_user)
    await OnboardingService.review_onboarding(
        db, employee.id, ReviewDecision.approve, hr_user.id,
    )

    with pytest.raises(InvalidTransition):
        await OnboardingService.review_onboarding(
            db, employee.id, ReviewDecision.reject, hr_user.id, "oops",
        )
    employee = await OnboardingService.get_employee(db, employee.id)
    assert employee.onboarding_status == OnboardingStatus.approved
    assert employee.employee_code == "EMP00001"


async def test_review_requires_submitted_state(db, hr_user):
    employee, _ = await _invited(db, hr_user)
    with pytest.raises(InvalidTransition):
        await OnboardingService.review_onboarding(
            db, employee.id, ReviewDecision.approve, hr_user.id,
        )


async def test_employee_codes_are_sequential(db, hr_user):
    first = await _submitted(db, hr_user)
    second = await _submitted(
        db, hr_user, official_email="f@co.com", personal_email="f@gmail.com",
    )
    for emp in (first, second):
        await OnboardingService.review_onboarding(
            db, emp.id, ReviewDecision.approve, hr_user.id,
        )
    assert (first.employee_code, second.employee_code) == ("EMP00001", "EMP00002")


# ═════════════════════════════════════════════════════════════════════
# Partial commit and reconciliation
# ═════════════════════════════════════════════════════════════════════


async def test_record_failure_after_review_reports_partial_commit(db, hr_user, monkeypatch):
    employee = await _submitted(db, hr_user)
    employee_id, reviewer_id = employee.id, hr_user.id

    async def _broken(*args, **kwargs):
        raise SQLAlchemyError("record store unavailable")

    monkeypatch.setattr(OnboardingService, "_record_review", _broken)

    with pytest.raises(PartialCommit):
        await OnboardingService.review_onboarding(
            db, employee_id, ReviewDecision.approve, reviewer_id,
        )

    # The employee side committed; the record lags behind
    employee = await OnboardingService.get_employee(db, employee_id)
    assert employee.onboarding_status == OnboardingStatus.approved
    assert employee.employee_code == "EMP00001"
    record = await OnboardingService.get_onboarding_status(db, employee_id)
    assert record.status == OnboardingRecordStatus.submitted

    monkeypatch.undo()
    repaired = await OnboardingService.reconcile_onboarding_record(
        db, employee_id, reviewer_id,
    )
    assert repaired.status == OnboardingRecordStatus.approved
    assert repaired.reviewed_by == reviewer_id
    assert (await _timeline_actions(db, employee_id))[-1] == TimelineAction.reconciled


async def test_reconcile_is_noop_when_in_sync(db, hr_user):
    employee, _ = await _invited(db, hr_user)
    await OnboardingService.reconcile_onboarding_record(db, employee.id, hr_user.id)
    assert await _timeline_actions(db, employee.id) == [TimelineAction.invited]


async def test_reconcile_recreates_missing_record(db, hr_user, make_employee):
    employee = await make_employee(status=OnboardingStatus.submitted)

    record = await OnboardingService.reconcile_onboarding_record(db, employee.id)
    assert record.status == OnboardingRecordStatus.submitted
    assert record.official_email == employee.official_email
    assert await _timeline_actions(db, employee.id) == [TimelineAction.reconciled]


# ═════════════════════════════════════════════════════════════════════
# Reminders and expiry
# ═════════════════════════════════════════════════════════════════════


async def test_reminder_counts_and_resends(db, hr_user, outbox):
    employee, _ = await _invited(db, hr_user)
    record = await OnboardingService.send_reminder(db, employee.id, hr_user.id)

    assert record.reminder_count == 1
    assert outbox.to("eve.personal@gmail.com")[-1][1] == "Reminder: complete your onboarding"
    assert (await _timeline_actions(db, employee.id))[-1] == TimelineAction.reminder_sent


async def test_reminder_after_submission_is_invalid(db, hr_user):
    employee = await _submitted(db, hr_user)
    with pytest.raises(InvalidTransition):
        await OnboardingService.send_reminder(db, employee.id, hr_user.id)


async def test_invitation_expiry(db, hr_user):
    _, record = await _invited(db, hr_user)
    assert not is_invitation_expired(record, now=record.invitation_sent_at)
    assert is_invitation_expired(record, now=record.expires_at + timedelta(seconds=1))

    record.status = OnboardingRecordStatus.submitted
    assert not is_invitation_expired(record, now=record.expires_at + timedelta(days=1))


# ═════════════════════════════════════════════════════════════════════
# Listing
# ═════════════════════════════════════════════════════════════════════


async def test_pending_onboardings_only_submitted(db, hr_user):
    submitted = await _submitted(db, hr_user)
    await _invited(db, hr_user, official_email="g@co.com", personal_email="g@gmail.com")

    pending = await OnboardingService.get_pending_onboardings(db)
    assert [e.id for e in pending] == [submitted.id]


async def test_pending_onboardings_oldest_submission_first(db, make_employee):
    base = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
    newest = await make_employee(email="newest@co.com", status=OnboardingStatus.submitted)
    oldest = await make_employee(email="oldest@co.com", status=OnboardingStatus.submitted)
    middle = await make_employee(email="middle@co.com", status=OnboardingStatus.submitted)
    newest.onboarding_submitted_at = base + timedelta(days=2)
    oldest.onboarding_submitted_at = base
    middle.onboarding_submitted_at = base + timedelta(hours=5)
    await db.commit()

    pending = await OnboardingService.get_pending_onboardings(db)
    assert [e.official_email for e in pending] == [
        "oldest@co.com", "middle@co.com", "newest@co.com",
    ]


# ═════════════════════════════════════════════════════════════════════
# Profile edits
# ═════════════════════════════════════════════════════════════════════


async def test_update_employee_changes_profile_only(db, employee, hr_user):
    updated = await OnboardingService.update_employee(
        db,
        employee.id,
        EmployeeUpdate(department="Finance", address=AddressSchema(city="Leeds")),
        hr_user.id,
    )

    assert updated.department == "Finance"
    assert updated.address == {"city": "Leeds"}
    assert updated.employee_code == "EMP90001"
    assert updated.onboarding_status == OnboardingStatus.approved

    [entry] = await get_audit_entries(db, "employee", employee.id)
    assert entry.action == "update"
    assert entry.actor_id == hr_user.id
    assert entry.old_values["department"] is None
    assert entry.new_values["department"] == "Finance"


async def test_update_employee_without_changes_writes_nothing(db, employee, hr_user):
    await OnboardingService.update_employee(db, employee.id, EmployeeUpdate(), hr_user.id)
    assert await get_audit_entries(db, "employee", employee.id) == []


async def test_update_unknown_employee(db, hr_user):
    with pytest.raises(NotFoundException):
        await OnboardingService.update_employee(
            db, uuid.uuid4(), EmployeeUpdate(department="Ops"), hr_user.id,
        )


async def test_invite_storage_error_becomes_storage_failure(db, hr_user, monkeypatch):
    async def _broken_flush(*args, **kwargs):
        raise IntegrityError("INSERT INTO users", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "flush", _broken_flush)
    with pytest.raises(StorageFailure):
        await _invited(db, hr_user)
    monkeypatch.undo()
    await db.rollback()

    result = await db.execute(select(func.count()).select_from(User))
    assert result.scalar_one() == 1


# ═════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════


async def test_api_full_onboarding_flow(client, db, hr_headers, auth_headers):
    resp = await client.post(
        "/api/v1/onboarding/invite",
        json={
            "name": "Eve Stone",
            "personal_email": "eve.personal@gmail.com",
            "official_email": "e@co.com",
        },
        headers=hr_headers,
    )
    assert resp.status_code == 201
    employee_id = resp.json()["employee"]["id"]
    assert resp.json()["employee"]["onboarding_status"] == "pending"

    user = (
        await db.execute(select(User).where(User.email == "e@co.com"))
    ).scalars().one()
    new_hire = auth_headers(user)

    resp = await client.post(
        "/api/v1/onboarding/submit",
        json={"first_name": "Eve", "last_name": "Stone", "department": "Finance"},
        headers=new_hire,
    )
    assert resp.status_code == 200
    assert resp.json()["onboarding_status"] == "submitted"

    resp = await client.post(
        f"/api/v1/onboarding/{employee_id}/review",
        json={"decision": "approve"},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["employee_code"] == "EMP00001"

    resp = await client.get("/api/v1/onboarding/me/status", headers=new_hire)
    assert resp.status_code == 200
    assert [e["action"] for e in resp.json()["timeline"]] == [
        "invited", "details_submitted", "approved",
    ]

    resp = await client.post(
        f"/api/v1/onboarding/{employee_id}/review",
        json={"decision": "reject", "comments": "late"},
        headers=hr_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["type"].endswith("/invalid-transition")


async def test_api_invite_requires_staff(client, employee_headers):
    resp = await client.post(
        "/api/v1/onboarding/invite",
        json={
            "name": "Sneaky",
            "personal_email": "sneaky@gmail.com",
            "official_email": "sneaky@co.com",
        },
        headers=employee_headers,
    )
    assert resp.status_code == 403


async def test_api_invite_rejects_bad_email(client, hr_headers):
    resp = await client.post(
        "/api/v1/onboarding/invite",
        json={"name": "X", "personal_email": "not-an-email", "official_email": "x@co.com"},
        headers=hr_headers,
    )
    assert resp.status_code == 422
    assert "personal_email" in resp.json()["errors"]


async def test_api_duplicate_invite_conflict(client, hr_headers):
    body = {
        "name": "Eve Stone",
        "personal_email": "eve.personal@gmail.com",
        "official_email": "e@co.com",
    }
    first = await client.post("/api/v1/onboarding/invite", json=body, headers=hr_headers)
    assert first.status_code == 201
    second = await client.post("/api/v1/onboarding/invite", json=body, headers=hr_headers)
    assert second.status_code == 409
    assert second.json()["type"].endswith("/duplicate-official-email")


async def test_api_list_employees_filters_by_status(
    client, hr_headers, employee, pending_employee,
):
    resp = await client.get(
        "/api/v1/onboarding/employees?status=pending&page=1&page_size=20",
        headers=hr_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["meta"]["total"] == 1
    assert body["data"][0]["id"] == str(pending_employee.id)


async def test_api_status_reports_expired_invitation(client, db, hr_user, hr_headers):
    fresh, _ = await _invited(db, hr_user)
    stale, record = await _invited(
        db, hr_user, official_email="stale@co.com", personal_email="stale@gmail.com",
    )
    record.expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
    await db.commit()

    resp = await client.get(f"/api/v1/onboarding/{stale.id}/status", headers=hr_headers)
    assert resp.status_code == 200
    assert resp.json()["is_expired"] is True

    resp = await client.get(f"/api/v1/onboarding/{fresh.id}/status", headers=hr_headers)
    assert resp.json()["is_expired"] is False


async def test_api_update_employee_keeps_code_and_status(
    client, employee, hr_headers, employee_headers,
):
    body = {
        "designation": "Analyst",
        "employee_code": "EMP00007",
        "onboarding_status": "pending",
    }
    resp = await client.put(f"/api/v1/onboarding/{employee.id}", json=body, headers=hr_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["designation"] == "Analyst"
    assert data["employee_code"] == "EMP90001"
    assert data["onboarding_status"] == "approved"

    resp = await client.put(
        f"/api/v1/onboarding/{employee.id}", json={"designation": "CEO"},
        headers=employee_headers,
    )
    assert resp.status_code == 403

    resp = await client.put(
        f"/api/v1/onboarding/{uuid.uuid4()}", json={"designation": "Ops"}, headers=hr_headers,
    )
    assert resp.status_code == 404
