"""Holiday Pydantic v2 schemas."""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HolidayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    date: date
    description: Optional[str] = Field(None, max_length=1000)
    is_optional: bool = False


class HolidayOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    date: date
    year: int
    description: Optional[str] = None
    is_optional: bool = False
    created_at: Optional[datetime] = None


class HolidayListOut(BaseModel):
    year: int
    holidays: list[HolidayOut]
    total: int
