"""Onboarding service layer: invite, self-submission, HR review, repair.

The Employee row is authoritative for admission state. The onboarding
record and its timeline are an audit projection written after the Employee;
a failure there is reported as ``PartialCommit`` and fixed later by
``reconcile_onboarding_record``.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrdesk.auth.models import User
from hrdesk.common.audit import create_audit_entry
from hrdesk.common.constants import (
    EMPLOYEE_CODE_PREFIX,
    EMPLOYEE_CODE_WIDTH,
    EMPLOYEE_SEQUENCE,
    RECORD_STATUS_FOR,
    LeaveType,
    OnboardingRecordStatus,
    OnboardingStatus,
    ReviewDecision,
    TimelineAction,
    UserRole,
)
from hrdesk.common.exceptions import (
    DuplicateOfficialEmail,
    InvalidTransition,
    NotFoundException,
    PartialCommit,
)
from hrdesk.common.pagination import PaginatedResponse, PaginationParams, paginate
from hrdesk.common.sequences import next_sequence_value
from hrdesk.config import settings
from hrdesk.database import commit_or_fail, execute_or_fail, flush_or_fail
from hrdesk.leave.models import LeaveBalance
from hrdesk.notifications.service import (
    notify_onboarding_approved,
    notify_onboarding_invitation,
    notify_onboarding_rejected,
    notify_onboarding_submitted,
)
from hrdesk.onboarding.models import Employee, OnboardingRecord, OnboardingTimelineEntry
from hrdesk.onboarding.schemas import (
    EmployeeUpdate,
    OnboardingDetailsSubmit,
    OnboardingInviteCreate,
)

logger = logging.getLogger(__name__)

# States from which an invitation is still outstanding
_OPEN_INVITATION_STATUSES = (
    OnboardingRecordStatus.invited,
    OnboardingRecordStatus.in_progress,
)


def format_employee_code(value: int) -> str:
    return f"{EMPLOYEE_CODE_PREFIX}{value:0{EMPLOYEE_CODE_WIDTH}d}"


class OnboardingService:
    """Async onboarding operations."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        result = await db.execute(select(Employee).where(Employee.id == employee_id))
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _get_record(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Optional[OnboardingRecord]:
        result = await db.execute(
            select(OnboardingRecord).where(OnboardingRecord.employee_id == employee_id)
        )
        return result.scalars().first()

    @staticmethod
    async def _append_timeline(
        db: AsyncSession,
        record_id: uuid.UUID,
        action: TimelineAction,
        actor_id: Optional[uuid.UUID],
        details: Optional[str] = None,
    ) -> OnboardingTimelineEntry:
        """Add the next timeline entry. Flushing is left to the caller."""
        result = await db.execute(
            select(func.coalesce(func.max(OnboardingTimelineEntry.sequence), 0)).where(
                OnboardingTimelineEntry.record_id == record_id,
            )
        )
        entry = OnboardingTimelineEntry(
            record_id=record_id,
            sequence=int(result.scalar_one()) + 1,
            action=action,
            actor_id=actor_id,
            details=details,
        )
        db.add(entry)
        return entry

    # ── Invite ──────────────────────────────────────────────────────

    @staticmethod
    async def initiate_onboarding(
        db: AsyncSession,
        data: OnboardingInviteCreate,
        initiated_by: uuid.UUID,
    ) -> tuple[Employee, OnboardingRecord]:
        """Create the user, a pending employee, default balances and the record.

        Sends the temporary credentials to the personal address.
        """
        official_email = data.official_email.lower()
        personal_email = data.personal_email.lower()

        existing = await db.execute(
            select(func.count()).select_from(User).where(User.email == official_email)
        )
        existing_emp = await db.execute(
            select(func.count()).select_from(Employee).where(
                Employee.official_email == official_email,
            )
        )
        if existing.scalar_one() or existing_emp.scalar_one():
            raise DuplicateOfficialEmail(official_email)

        temporary_password = data.temporary_password or secrets.token_urlsafe(12)
        now = datetime.now(timezone.utc)

        user = User(
            email=official_email,
            name=data.name,
            personal_email=personal_email,
            role=UserRole.employee,
            is_active=True,
            is_onboarded=False,
        )
        db.add(user)
        await flush_or_fail(db, "user")

        employee = Employee(
            user_id=user.id,
            personal_email=personal_email,
            official_email=official_email,
            onboarding_status=OnboardingStatus.pending,
        )
        db.add(employee)
        await flush_or_fail(db, "employee")

        for leave_type in LeaveType:
            db.add(
                LeaveBalance(
                    employee_id=employee.id,
                    leave_type=leave_type,
                    allotted=settings.default_leave_balances[leave_type.value],
                )
            )

        record = OnboardingRecord(
            employee_id=employee.id,
            initiated_by=initiated_by,
            personal_email=personal_email,
            official_email=official_email,
            status=OnboardingRecordStatus.invited,
            invitation_sent_at=now,
            expires_at=now + timedelta(days=settings.ONBOARDING_INVITE_EXPIRY_DAYS),
            reminder_count=0,
        )
        db.add(record)
        await flush_or_fail(db, "onboarding record")

        await OnboardingService._append_timeline(
            db, record.id, TimelineAction.invited, initiated_by,
            f"Onboarding initiated for {data.name}",
        )
        await flush_or_fail(db, "onboarding timeline")

        logger.info("Onboarding initiated for %s by %s", official_email, initiated_by)
        await notify_onboarding_invitation(employee, temporary_password)
        return employee, record

    @staticmethod
    async def send_reminder(
        db: AsyncSession,
        employee_id: uuid.UUID,
        sent_by: uuid.UUID,
        temporary_password: Optional[str] = None,
    ) -> OnboardingRecord:
        employee = await OnboardingService.get_employee(db, employee_id)
        record = await OnboardingService._get_record(db, employee_id)
        if record is None:
            raise NotFoundException("OnboardingRecord", str(employee_id))
        if record.status not in _OPEN_INVITATION_STATUSES:
            raise InvalidTransition("onboarding invitation", record.status, "send a reminder for")

        record.reminder_count = (record.reminder_count or 0) + 1
        record.updated_at = datetime.now(timezone.utc)
        await OnboardingService._append_timeline(
            db, record.id, TimelineAction.reminder_sent, sent_by,
        )
        await flush_or_fail(db, "onboarding reminder")

        await notify_onboarding_invitation(employee, temporary_password, reminder=True)
        return record

    # ── Self-submission ─────────────────────────────────────────────

    @staticmethod
    async def submit_onboarding_details(
        db: AsyncSession,
        employee_id: uuid.UUID,
        payload: OnboardingDetailsSubmit,
    ) -> Employee:
        """Merge the submitted details and move to ``submitted``.

        Legal only from ``pending`` or ``rejected`` (the resubmission loop).
        """
        employee = await OnboardingService.get_employee(db, employee_id)
        current = employee.onboarding_status
        if current not in (OnboardingStatus.pending, OnboardingStatus.rejected):
            raise InvalidTransition("onboarding", current, "submit details for")

        fields = payload.model_dump(exclude_unset=True)
        now = datetime.now(timezone.utc)
        matched = await execute_or_fail(
            db,
            update(Employee)
            .where(
                Employee.id == employee_id,
                Employee.onboarding_status == current,
            )
            .values(
                **fields,
                onboarding_status=OnboardingStatus.submitted,
                onboarding_submitted_at=now,
                updated_at=now,
            ),
            "onboarding submission",
        )
        if matched == 0:
            await db.refresh(employee, attribute_names=["onboarding_status"])
            raise InvalidTransition("onboarding", employee.onboarding_status, "submit details for")

        await execute_or_fail(
            db,
            update(User).where(User.id == employee.user_id).values(is_onboarded=True),
            "user onboarding flag",
        )

        record = await OnboardingService._get_record(db, employee_id)
        if record is None:
            logger.warning("No onboarding record for employee %s; submission not mirrored", employee_id)
        else:
            record.status = OnboardingRecordStatus.submitted
            record.details_submitted_at = now
            record.submitted_payload = payload.model_dump(mode="json", exclude_unset=True)
            record.updated_at = now
            await OnboardingService._append_timeline(
                db, record.id, TimelineAction.details_submitted, employee.user_id,
                "Employee submitted onboarding details",
            )
            await flush_or_fail(db, "onboarding record")

        logger.info("Onboarding details submitted for employee %s", employee_id)
        await notify_onboarding_submitted(employee)
        return employee

    # ── Review ──────────────────────────────────────────────────────

    @staticmethod
    async def _record_review(
        db: AsyncSession,
        employee: Employee,
        decision: ReviewDecision,
        reviewer_id: uuid.UUID,
        comments: Optional[str],
        reviewed_at: datetime,
    ) -> None:
        """Mirror a committed review onto the onboarding record and commit it."""
        record = await OnboardingService._get_record(db, employee.id)
        if record is None:
            raise NotFoundException("OnboardingRecord", str(employee.id))

        approved = decision == ReviewDecision.approve
        record.status = (
            OnboardingRecordStatus.approved if approved else OnboardingRecordStatus.rejected
        )
        record.reviewed_by = reviewer_id
        record.reviewed_at = reviewed_at
        record.review_comments = comments
        record.updated_at = reviewed_at
        await OnboardingService._append_timeline(
            db,
            record.id,
            TimelineAction.approved if approved else TimelineAction.rejected,
            reviewer_id,
            comments,
        )
        await db.flush()
        await db.commit()

    @staticmethod
    async def review_onboarding(
        db: AsyncSession,
        employee_id: uuid.UUID,
        decision: ReviewDecision,
        reviewer_id: uuid.UUID,
        comments: Optional[str] = None,
    ) -> Employee:
        """Approve or reject a submitted onboarding.

        Approval assigns the employee code from the ``employee`` series. The
        Employee update is committed before the record is touched.
        """
        employee = await OnboardingService.get_employee(db, employee_id)
        verb = decision.value
        if employee.onboarding_status != OnboardingStatus.submitted:
            raise InvalidTransition("onboarding", employee.onboarding_status, verb)

        now = datetime.now(timezone.utc)
        if decision == ReviewDecision.approve:
            code = format_employee_code(await next_sequence_value(db, EMPLOYEE_SEQUENCE))
            values = dict(
                onboarding_status=OnboardingStatus.approved,
                employee_code=code,
                onboarding_approved_at=now,
                onboarding_approved_by=reviewer_id,
                updated_at=now,
            )
        else:
            values = dict(
                onboarding_status=OnboardingStatus.rejected,
                onboarding_remarks=comments,
                updated_at=now,
            )

        matched = await execute_or_fail(
            db,
            update(Employee)
            .where(
                Employee.id == employee_id,
                Employee.onboarding_status == OnboardingStatus.submitted,
            )
            .values(**values),
            "onboarding review",
        )
        if matched == 0:
            await db.refresh(employee, attribute_names=["onboarding_status"])
            raise InvalidTransition("onboarding", employee.onboarding_status, verb)

        await commit_or_fail(db, "onboarding review")
        logger.info(
            "Onboarding for employee %s %s by %s (code=%s)",
            employee_id, employee.onboarding_status.value, reviewer_id,
            employee.employee_code,
        )

        if decision == ReviewDecision.approve:
            await notify_onboarding_approved(employee)
        else:
            await notify_onboarding_rejected(employee, comments)

        try:
            await OnboardingService._record_review(
                db, employee, decision, reviewer_id, comments, now,
            )
        except (SQLAlchemyError, NotFoundException) as exc:
            await db.rollback()
            logger.error(
                "Onboarding record for employee %s not updated after review: %s",
                employee_id, exc,
            )
            raise PartialCommit("Employee", employee_id, "onboarding record") from exc

        return employee

    # ── Repair ──────────────────────────────────────────────────────

    @staticmethod
    async def reconcile_onboarding_record(
        db: AsyncSession,
        employee_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> OnboardingRecord:
        """Bring the record back in line with the Employee.

        Creates the record if it is missing. A ``reconciled`` timeline entry
        is appended only when something changed.
        """
        employee = await OnboardingService.get_employee(db, employee_id)
        expected = RECORD_STATUS_FOR[employee.onboarding_status]
        record = await OnboardingService._get_record(db, employee_id)

        if record is None:
            record = OnboardingRecord(
                employee_id=employee.id,
                personal_email=employee.personal_email,
                official_email=employee.official_email,
                status=expected,
            )
            db.add(record)
            await flush_or_fail(db, "onboarding record")
            previous = None
        elif record.status == expected:
            return record
        else:
            previous = record.status

        now = datetime.now(timezone.utc)
        record.status = expected
        record.updated_at = now
        if expected == OnboardingRecordStatus.submitted:
            record.details_submitted_at = employee.onboarding_submitted_at
        elif expected == OnboardingRecordStatus.approved:
            record.reviewed_by = employee.onboarding_approved_by
            record.reviewed_at = employee.onboarding_approved_at
        elif expected == OnboardingRecordStatus.rejected:
            record.review_comments = employee.onboarding_remarks

        await OnboardingService._append_timeline(
            db, record.id, TimelineAction.reconciled, actor_id,
            f"{previous.value if previous else 'missing'} -> {expected.value}",
        )
        await flush_or_fail(db, "onboarding reconciliation")
        logger.info(
            "Onboarding record for employee %s reconciled to %s", employee_id, expected.value,
        )
        return record

    # ── Profile ─────────────────────────────────────────────────────

    @staticmethod
    async def update_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: EmployeeUpdate,
        actor_id: uuid.UUID,
    ) -> Employee:
        """Partial-update profile fields. Never touches the code or admission state."""
        employee = await OnboardingService.get_employee(db, employee_id)
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return employee

        old_values: dict[str, Any] = {}
        for field, value in changes.items():
            old = getattr(employee, field)
            old_values[field] = old.isoformat() if isinstance(old, date) else old
            setattr(employee, field, value)
        employee.updated_at = datetime.now(timezone.utc)
        await flush_or_fail(db, "employee update")

        await create_audit_entry(
            db,
            action="update",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=data.model_dump(mode="json", exclude_unset=True),
        )
        logger.info("Employee %s updated by %s: %s", employee_id, actor_id, sorted(changes))
        return employee

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_onboarding_status(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> OnboardingRecord:
        """The onboarding record with its full timeline."""
        result = await db.execute(
            select(OnboardingRecord)
            .where(OnboardingRecord.employee_id == employee_id)
            .options(selectinload(OnboardingRecord.timeline))
            .execution_options(populate_existing=True)
        )
        record = result.scalars().first()
        if record is None:
            raise NotFoundException("OnboardingRecord", str(employee_id))
        return record

    @staticmethod
    async def get_pending_onboardings(db: AsyncSession) -> list[Employee]:
        """Submitted onboardings, oldest submission first."""
        result = await db.execute(
            select(Employee)
            .where(Employee.onboarding_status == OnboardingStatus.submitted)
            .order_by(Employee.onboarding_submitted_at.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_employees(
        db: AsyncSession,
        params: PaginationParams,
        *,
        status: Optional[OnboardingStatus] = None,
        department: Optional[str] = None,
        search: Optional[str] = None,
    ) -> PaginatedResponse:
        query = select(Employee).order_by(Employee.created_at.desc())
        if status is not None:
            query = query.where(Employee.onboarding_status == status)
        if department:
            query = query.where(Employee.department == department)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Employee.first_name.ilike(pattern),
                    Employee.last_name.ilike(pattern),
                    Employee.employee_code.ilike(pattern),
                    Employee.official_email.ilike(pattern),
                )
            )
        return await paginate(db, query, params, model=Employee)
