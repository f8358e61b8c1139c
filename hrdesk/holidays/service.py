"""Holiday calendar and the working-day gate used by the leave ledger."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Collection, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrdesk.common.constants import WEEKEND_DAYS
from hrdesk.common.exceptions import ConflictError, NotFoundException
from hrdesk.database import flush_or_fail
from hrdesk.holidays.models import Holiday
from hrdesk.holidays.schemas import HolidayCreate

logger = logging.getLogger(__name__)


def is_non_working_day(day: date, holidays: Collection[date]) -> bool:
    """Saturday, Sunday, or a registered holiday (date-only comparison)."""
    return day.weekday() in WEEKEND_DAYS or day in holidays


class HolidayService:
    """Async holiday operations."""

    @staticmethod
    async def get_holiday_dates(
        db: AsyncSession,
        from_date: date,
        to_date: date,
    ) -> set[date]:
        """Return the set of holiday dates inside ``[from_date, to_date]``."""
        result = await db.execute(
            select(Holiday.date).where(
                Holiday.date >= from_date,
                Holiday.date <= to_date,
            )
        )
        return {row[0] for row in result.all()}

    @staticmethod
    async def is_non_working_day(db: AsyncSession, day: date) -> bool:
        holidays = await HolidayService.get_holiday_dates(db, day, day)
        return is_non_working_day(day, holidays)

    @staticmethod
    async def create_holiday(
        db: AsyncSession,
        data: HolidayCreate,
        *,
        created_by: Optional[uuid.UUID] = None,
    ) -> Holiday:
        """Register a holiday. One holiday per date, names unique within a year."""
        year = data.date.year
        existing = await db.execute(
            select(Holiday).where(
                or_(
                    Holiday.date == data.date,
                    (Holiday.name == data.name) & (Holiday.year == year),
                )
            )
        )
        clash = existing.scalars().first()
        if clash is not None:
            if clash.date == data.date:
                raise ConflictError("date", data.date.isoformat())
            raise ConflictError("name", data.name)

        holiday = Holiday(
            name=data.name,
            date=data.date,
            year=year,
            description=data.description,
            is_optional=data.is_optional,
            created_by=created_by,
        )
        db.add(holiday)
        await flush_or_fail(db, "holiday")
        logger.info("Holiday %s registered on %s", holiday.name, holiday.date)
        return holiday

    @staticmethod
    async def list_holidays(db: AsyncSession, year: int) -> list[Holiday]:
        result = await db.execute(
            select(Holiday).where(Holiday.year == year).order_by(Holiday.date)
        )
        return list(result.scalars().all())

    @staticmethod
    async def delete_holiday(db: AsyncSession, holiday_id: uuid.UUID) -> None:
        result = await db.execute(select(Holiday).where(Holiday.id == holiday_id))
        holiday = result.scalars().first()
        if holiday is None:
            raise NotFoundException("Holiday", str(holiday_id))
        await db.delete(holiday)
        await flush_or_fail(db, "holiday deletion")
