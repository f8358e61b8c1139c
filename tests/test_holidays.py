"""Holiday calendar tests: the working-day gate, registration rules and API."""

from __future__ import annotations

import uuid
from datetime import date

import pytest

from hrdesk.common.exceptions import ConflictError, NotFoundException
from hrdesk.holidays.schemas import HolidayCreate
from hrdesk.holidays.service import HolidayService, is_non_working_day


# ═════════════════════════════════════════════════════════════════════
# Pure calendar predicate
# ═════════════════════════════════════════════════════════════════════


def test_weekends_are_non_working():
    assert is_non_working_day(date(2025, 1, 4), set())      # Saturday
    assert is_non_working_day(date(2025, 1, 5), set())      # Sunday
    assert not is_non_working_day(date(2025, 1, 6), set())  # Monday


def test_registered_holiday_is_non_working():
    holidays = {date(2025, 1, 1)}
    assert is_non_working_day(date(2025, 1, 1), holidays)
    assert not is_non_working_day(date(2025, 1, 2), holidays)


# ═════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════


async def test_create_and_query_holiday(db):
    await HolidayService.create_holiday(
        db, HolidayCreate(name="New Year", date=date(2025, 1, 1)),
    )

    assert await HolidayService.is_non_working_day(db, date(2025, 1, 1))
    assert not await HolidayService.is_non_working_day(db, date(2025, 1, 2))

    dates = await HolidayService.get_holiday_dates(db, date(2025, 1, 1), date(2025, 12, 31))
    assert dates == {date(2025, 1, 1)}


async def test_duplicate_holiday_date_rejected(db):
    await HolidayService.create_holiday(
        db, HolidayCreate(name="New Year", date=date(2025, 1, 1)),
    )
    with pytest.raises(ConflictError):
        await HolidayService.create_holiday(
            db, HolidayCreate(name="Founders Day", date=date(2025, 1, 1)),
        )


async def test_holiday_name_unique_within_year_only(db):
    await HolidayService.create_holiday(
        db, HolidayCreate(name="Founders Day", date=date(2025, 3, 3)),
    )
    with pytest.raises(ConflictError):
        await HolidayService.create_holiday(
            db, HolidayCreate(name="Founders Day", date=date(2025, 3, 4)),
        )
    # Same name next year is fine
    holiday = await HolidayService.create_holiday(
        db, HolidayCreate(name="Founders Day", date=date(2026, 3, 3)),
    )
    assert holiday.year == 2026


async def test_list_holidays_by_year_in_date_order(db):
    for name, day in (
        ("Labour Day", date(2025, 5, 1)),
        ("New Year", date(2025, 1, 1)),
        ("New Year", date(2026, 1, 1)),
    ):
        await HolidayService.create_holiday(db, HolidayCreate(name=name, date=day))

    holidays = await HolidayService.list_holidays(db, 2025)
    assert [h.name for h in holidays] == ["New Year", "Labour Day"]


async def test_delete_missing_holiday(db):
    with pytest.raises(NotFoundException):
        await HolidayService.delete_holiday(db, uuid.uuid4())


# ═════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════


async def test_api_hr_creates_holiday_and_employee_lists(
    client, hr_headers, employee_headers,
):
    resp = await client.post(
        "/api/v1/holidays/",
        json={"name": "New Year", "date": "2025-01-01"},
        headers=hr_headers,
    )
    assert resp.status_code == 201
    assert resp.json()["year"] == 2025

    resp = await client.get("/api/v1/holidays/?year=2025", headers=employee_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["holidays"][0]["date"] == "2025-01-01"

    resp = await client.get(
        "/api/v1/holidays/check?day=2025-01-01", headers=employee_headers,
    )
    assert resp.json()["non_working"] is True


async def test_api_employee_cannot_create_holiday(client, employee_headers):
    resp = await client.post(
        "/api/v1/holidays/",
        json={"name": "Day Off", "date": "2025-02-03"},
        headers=employee_headers,
    )
    assert resp.status_code == 403
    assert resp.headers["content-type"].startswith("application/problem+json")


async def test_api_duplicate_holiday_conflict(client, hr_headers):
    payload = {"name": "New Year", "date": "2025-01-01"}
    await client.post("/api/v1/holidays/", json=payload, headers=hr_headers)
    resp = await client.post(
        "/api/v1/holidays/",
        json={"name": "Other", "date": "2025-01-01"},
        headers=hr_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["type"].endswith("/conflict")
