"""Holiday router: calendar listing for everyone, maintenance for HR/admin."""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrdesk.auth.dependencies import get_current_user, require_staff
from hrdesk.auth.models import User
from hrdesk.database import get_db
from hrdesk.holidays.schemas import HolidayCreate, HolidayListOut, HolidayOut
from hrdesk.holidays.service import HolidayService

router = APIRouter(prefix="", tags=["holidays"])


@router.get("/", response_model=HolidayListOut)
async def list_holidays(
    year: Optional[int] = Query(None, ge=1970, le=2100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Holidays for a year (defaults to the current year)."""
    target_year = year or datetime.now(timezone.utc).year
    holidays = await HolidayService.list_holidays(db, target_year)
    return HolidayListOut(
        year=target_year,
        holidays=[HolidayOut.model_validate(h) for h in holidays],
        total=len(holidays),
    )


@router.get("/check")
async def check_day(
    day: date = Query(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"date": day, "non_working": await HolidayService.is_non_working_day(db, day)}


@router.post("/", response_model=HolidayOut, status_code=201)
async def create_holiday(
    body: HolidayCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    holiday = await HolidayService.create_holiday(db, body, created_by=user.id)
    return HolidayOut.model_validate(holiday)


@router.delete("/{holiday_id}", status_code=204)
async def delete_holiday(
    holiday_id: uuid.UUID,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await HolidayService.delete_holiday(db, holiday_id)
