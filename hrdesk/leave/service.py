"""Leave service layer: working-day engine, applications, decisions, balances.

Business logic:
  - Chargeable days exclude weekends and registered holidays
  - Days taken are always derived from approved requests in the year of
    their start date; nothing is debited on submission
  - Status changes are conditional updates guarded on the current status,
    so a repeated or concurrent decision fails instead of overwriting
  - Approval re-checks the balance against freshly read approved totals
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Collection, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrdesk.auth.models import User
from hrdesk.common.audit import create_audit_entry
from hrdesk.common.constants import ACTIVE_LEAVE_STATUSES, LeaveStatus, LeaveType
from hrdesk.common.exceptions import (
    ForbiddenException,
    InsufficientBalance,
    InvalidTransition,
    LeaveAlreadyStarted,
    NotFoundException,
    OnboardingIncomplete,
    OverlappingRequest,
    ValidationException,
)
from hrdesk.common.pagination import PaginatedResponse, PaginationParams, paginate
from hrdesk.database import execute_or_fail, flush_or_fail
from hrdesk.holidays.service import HolidayService, is_non_working_day
from hrdesk.leave.models import LeaveBalance, LeaveComment, LeaveRequest
from hrdesk.leave.schemas import (
    LeaveRequestCreate,
    LeaveStatsOut,
    LeaveSummaryOut,
    LeaveTypeSummary,
)
from hrdesk.notifications.service import notify_leave_decision, notify_leave_request
from hrdesk.onboarding.models import Employee

logger = logging.getLogger(__name__)


def count_chargeable_days(
    start_date: date,
    end_date: date,
    holidays: Collection[date],
) -> int:
    """Days in ``[start_date, end_date]`` that are neither weekend nor holiday."""
    total = 0
    current = start_date
    while current <= end_date:
        if not is_non_working_day(current, holidays):
            total += 1
        current += timedelta(days=1)
    return total


def _year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: applications, decisions, cancellation, balances."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def calculate_leave_days(
        db: AsyncSession,
        start_date: date,
        end_date: date,
    ) -> int:
        holidays = await HolidayService.get_holiday_dates(db, start_date, end_date)
        return count_chargeable_days(start_date, end_date, holidays)

    @staticmethod
    async def _get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        result = await db.execute(select(Employee).where(Employee.id == employee_id))
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _employee_id_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> Optional[uuid.UUID]:
        result = await db.execute(
            select(Employee.id).where(Employee.user_id == user_id)
        )
        return result.scalar()

    @staticmethod
    async def _get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        with_comments: bool = False,
    ) -> LeaveRequest:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.employee))
        )
        if with_comments:
            query = query.options(selectinload(LeaveRequest.comments)).execution_options(
                populate_existing=True,
            )
        result = await db.execute(query)
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    async def _get_allotted(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
    ) -> int:
        result = await db.execute(
            select(LeaveBalance.allotted).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
            )
        )
        return int(result.scalar() or 0)

    @staticmethod
    async def _get_taken_days(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        year: int,
    ) -> int:
        """Sum of total_days over approved requests starting in ``year``."""
        first, last = _year_bounds(year)
        result = await db.execute(
            select(func.coalesce(func.sum(LeaveRequest.total_days), 0)).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.leave_type == leave_type,
                LeaveRequest.status == LeaveStatus.approved,
                LeaveRequest.start_date >= first,
                LeaveRequest.start_date <= last,
            )
        )
        return int(result.scalar_one())

    @staticmethod
    async def _can_view(db: AsyncSession, leave_req: LeaveRequest, viewer: User) -> bool:
        if viewer.is_staff:
            return True
        own_id = await LeaveService._employee_id_for_user(db, viewer.id)
        return own_id is not None and own_id == leave_req.employee_id

    # ─────────────────────────────────────────────────────────────────
    # Apply Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
        *,
        today: Optional[date] = None,
    ) -> LeaveRequest:
        """Apply for leave with full validation, in this order:
        - Employee exists and has completed onboarding
        - Start date not in the past, end date not before start date
        - At least one chargeable day in the range
        - Sufficient balance (allotted minus approved days this year)
        - No overlapping pending/approved request
        """
        today = today or datetime.now(timezone.utc).date()

        employee = await LeaveService._get_employee(db, employee_id)
        if not employee.is_onboarded:
            raise OnboardingIncomplete("apply for leave")

        # ── Date checks ─────────────────────────────────────────────
        if data.start_date < today:
            raise ValidationException(
                {"start_date": ["Leave cannot start in the past."]}
            )
        if data.end_date < data.start_date:
            raise ValidationException(
                {"end_date": ["End date must be on or after the start date."]}
            )

        total_days = await LeaveService.calculate_leave_days(
            db, data.start_date, data.end_date,
        )
        if total_days <= 0:
            raise ValidationException(
                {"dates": ["No working days found in the selected range "
                           "(all days are weekends or holidays)."]}
            )

        # ── Balance ─────────────────────────────────────────────────
        allotted = await LeaveService._get_allotted(db, employee_id, data.leave_type)
        taken = await LeaveService._get_taken_days(
            db, employee_id, data.leave_type, data.start_date.year,
        )
        available = allotted - taken
        if total_days > available:
            raise InsufficientBalance(data.leave_type, available, total_days)

        # ── Overlap (inclusive on both ends) ────────────────────────
        overlap_result = await db.execute(
            select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveRequest.start_date <= data.end_date,
                LeaveRequest.end_date >= data.start_date,
            )
        )
        if overlap_result.scalar_one() > 0:
            raise OverlappingRequest()

        leave_req = LeaveRequest(
            employee_id=employee_id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=total_days,
            reason=data.reason,
            status=LeaveStatus.pending,
        )
        db.add(leave_req)
        await flush_or_fail(db, "leave request")

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=employee.user_id,
            new_values={
                "leave_type": data.leave_type.value,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "total_days": total_days,
                "status": LeaveStatus.pending.value,
            },
        )
        logger.info(
            "Leave %s requested by employee %s: %s..%s (%d days)",
            leave_req.id, employee_id, data.start_date, data.end_date, total_days,
        )

        await notify_leave_request(leave_req, employee)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_leave_status(
        db: AsyncSession,
        request_id: uuid.UUID,
        status: LeaveStatus,
        approver_id: uuid.UUID,
        rejection_reason: Optional[str] = None,
    ) -> LeaveRequest:
        """Decide a pending request. Only ``pending`` requests can be decided."""
        if status not in (LeaveStatus.approved, LeaveStatus.rejected):
            raise ValidationException(
                {"status": ["Status must be 'approved' or 'rejected'."]}
            )
        reason = (rejection_reason or "").strip() or None
        if status == LeaveStatus.rejected and reason is None:
            raise ValidationException(
                {"rejection_reason": ["A reason is required to reject a leave request."]}
            )

        leave_req = await LeaveService._get_request(db, request_id)
        employee = leave_req.employee
        action = "approve" if status == LeaveStatus.approved else "reject"
        if leave_req.status != LeaveStatus.pending:
            raise InvalidTransition("leave request", leave_req.status, action)

        if status == LeaveStatus.approved:
            allotted = await LeaveService._get_allotted(
                db, leave_req.employee_id, leave_req.leave_type,
            )
            taken = await LeaveService._get_taken_days(
                db, leave_req.employee_id, leave_req.leave_type,
                leave_req.start_date.year,
            )
            if taken + leave_req.total_days > allotted:
                raise InsufficientBalance(
                    leave_req.leave_type, allotted - taken, leave_req.total_days,
                )

        now = datetime.now(timezone.utc)
        matched = await execute_or_fail(
            db,
            update(LeaveRequest)
            .where(
                LeaveRequest.id == request_id,
                LeaveRequest.status == LeaveStatus.pending,
            )
            .values(
                status=status,
                approver_id=approver_id,
                decision_at=now,
                rejection_reason=reason if status == LeaveStatus.rejected else None,
                updated_at=now,
            ),
            "leave decision",
        )
        if matched == 0:
            await db.refresh(leave_req, attribute_names=["status"])
            raise InvalidTransition("leave request", leave_req.status, action)

        await create_audit_entry(
            db,
            action=action,
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": status.value, "rejection_reason": reason},
        )
        logger.info("Leave %s %s by %s", leave_req.id, status.value, approver_id)

        await notify_leave_decision(leave_req, employee)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        employee_id: uuid.UUID,
        *,
        today: Optional[date] = None,
    ) -> LeaveRequest:
        """Cancel an own pending, or approved-but-not-started, request."""
        today = today or datetime.now(timezone.utc).date()

        leave_req = await LeaveService._get_request(db, request_id)
        if leave_req.employee_id != employee_id:
            raise ForbiddenException("You can only cancel your own leave requests.")

        current = leave_req.status
        if current not in ACTIVE_LEAVE_STATUSES:
            raise InvalidTransition("leave request", current, "cancel")
        if current == LeaveStatus.approved and leave_req.start_date < today:
            raise LeaveAlreadyStarted()

        now = datetime.now(timezone.utc)
        matched = await execute_or_fail(
            db,
            update(LeaveRequest)
            .where(
                LeaveRequest.id == request_id,
                LeaveRequest.status == current,
            )
            .values(status=LeaveStatus.cancelled, cancelled_at=now, updated_at=now),
            "leave cancellation",
        )
        if matched == 0:
            await db.refresh(leave_req, attribute_names=["status"])
            raise InvalidTransition("leave request", leave_req.status, "cancel")

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=leave_req.employee.user_id,
            old_values={"status": current.value},
            new_values={"status": LeaveStatus.cancelled.value},
        )
        logger.info("Leave %s cancelled by employee %s", leave_req.id, employee_id)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Summary / balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_summary(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> LeaveSummaryOut:
        """Per type: allotted days, approved days taken in ``year``, available."""
        year = year or datetime.now(timezone.utc).year
        await LeaveService._get_employee(db, employee_id)

        bal_result = await db.execute(
            select(LeaveBalance.leave_type, LeaveBalance.allotted).where(
                LeaveBalance.employee_id == employee_id,
            )
        )
        allotted = {row[0]: row[1] for row in bal_result.all()}

        first, last = _year_bounds(year)
        taken_result = await db.execute(
            select(LeaveRequest.leave_type, func.sum(LeaveRequest.total_days))
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status == LeaveStatus.approved,
                LeaveRequest.start_date >= first,
                LeaveRequest.start_date <= last,
            )
            .group_by(LeaveRequest.leave_type)
        )
        taken = {row[0]: int(row[1] or 0) for row in taken_result.all()}

        types = []
        for leave_type in LeaveType:
            balance = allotted.get(leave_type, 0)
            used = taken.get(leave_type, 0)
            types.append(
                LeaveTypeSummary(
                    leave_type=leave_type,
                    balance=balance,
                    taken=used,
                    available=balance - used,
                )
            )
        return LeaveSummaryOut(employee_id=employee_id, year=year, types=types)

    @staticmethod
    async def set_leave_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        allotted: int,
        actor_id: uuid.UUID,
        *,
        year: Optional[int] = None,
    ) -> LeaveBalance:
        """Adjust an allotment. It may not drop below what was already taken."""
        year = year or datetime.now(timezone.utc).year
        await LeaveService._get_employee(db, employee_id)

        if allotted < 0:
            raise ValidationException({"allotted": ["Must be zero or more."]})
        taken = await LeaveService._get_taken_days(db, employee_id, leave_type, year)
        if allotted < taken:
            raise ValidationException(
                {"allotted": [f"{taken} {leave_type.value} days already taken in {year}."]}
            )

        result = await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
            )
        )
        balance = result.scalars().first()
        old = balance.allotted if balance else 0
        if balance is None:
            balance = LeaveBalance(employee_id=employee_id, leave_type=leave_type)
            db.add(balance)
        balance.allotted = allotted
        balance.updated_at = datetime.now(timezone.utc)
        await flush_or_fail(db, "leave balance")

        await create_audit_entry(
            db,
            action="adjust_balance",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor_id,
            old_values={"leave_type": leave_type.value, "allotted": old},
            new_values={"leave_type": leave_type.value, "allotted": allotted},
        )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Comments and reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def add_comment(
        db: AsyncSession,
        request_id: uuid.UUID,
        author: User,
        text: str,
    ) -> LeaveComment:
        leave_req = await LeaveService._get_request(db, request_id)
        if not await LeaveService._can_view(db, leave_req, author):
            raise ForbiddenException("You can only comment on your own leave requests.")

        comment = LeaveComment(
            leave_request_id=leave_req.id,
            author_id=author.id,
            text=text,
        )
        db.add(comment)
        await flush_or_fail(db, "leave comment")
        return comment

    @staticmethod
    async def get_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        viewer: User,
    ) -> LeaveRequest:
        leave_req = await LeaveService._get_request(db, request_id, with_comments=True)
        if not await LeaveService._can_view(db, leave_req, viewer):
            raise ForbiddenException("You can only view your own leave requests.")
        return leave_req

    @staticmethod
    async def list_leaves(
        db: AsyncSession,
        viewer: User,
        params: PaginationParams,
        *,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        employee_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> PaginatedResponse:
        """Paginated listing; employees only ever see their own requests."""
        if not viewer.is_staff:
            employee_id = await LeaveService._employee_id_for_user(db, viewer.id)
            if employee_id is None:
                raise NotFoundException("Employee", f"user:{viewer.id}")

        query = select(LeaveRequest).order_by(LeaveRequest.created_at.desc())
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if leave_type is not None:
            query = query.where(LeaveRequest.leave_type == leave_type)
        if from_date is not None:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.start_date <= to_date)

        return await paginate(db, query, params, model=LeaveRequest)

    @staticmethod
    async def get_pending_leaves(db: AsyncSession) -> list[LeaveRequest]:
        """Pending requests, oldest first."""
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.status == LeaveStatus.pending)
            .order_by(LeaveRequest.created_at.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_leave_stats(
        db: AsyncSession,
        year: Optional[int] = None,
    ) -> LeaveStatsOut:
        """Request counts by status and type, optionally for one start-date year."""
        scope = []
        if year is not None:
            first, last = _year_bounds(year)
            scope = [LeaveRequest.start_date >= first, LeaveRequest.start_date <= last]

        async def _counts(column, members) -> dict[str, int]:
            result = await db.execute(
                select(column, func.count()).where(*scope).group_by(column)
            )
            counts = {m.value: 0 for m in members}
            counts.update({row[0].value: row[1] for row in result.all()})
            return counts

        by_status = await _counts(LeaveRequest.status, LeaveStatus)
        by_type = await _counts(LeaveRequest.leave_type, LeaveType)

        approved = await db.execute(
            select(func.coalesce(func.sum(LeaveRequest.total_days), 0)).where(
                LeaveRequest.status == LeaveStatus.approved, *scope,
            )
        )
        return LeaveStatsOut(
            year=year,
            total=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            approved_days=int(approved.scalar_one()),
        )
