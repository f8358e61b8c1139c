"""Onboarding Pydantic v2 schemas: invite, self-submission, review.

Naming conventions:
  - *Create / *Submit / *Review → request bodies (write)
  - *Out                        → response bodies (read)
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from hrdesk.common.constants import (
    OnboardingRecordStatus,
    OnboardingStatus,
    ReviewDecision,
    TimelineAction,
)


# ═════════════════════════════════════════════════════════════════════
# Shared / embedded
# ═════════════════════════════════════════════════════════════════════


class AddressSchema(BaseModel):
    """Address block (stored as JSON)."""

    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class EmergencyContactSchema(BaseModel):
    """Emergency contact block (stored as JSON)."""

    name: Optional[str] = None
    relationship: Optional[str] = None
    phone: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class OnboardingInviteCreate(BaseModel):
    """HR invite. A temporary password is generated when none is given."""

    name: str = Field(..., min_length=1, max_length=200)
    personal_email: EmailStr
    official_email: EmailStr
    temporary_password: Optional[str] = Field(None, min_length=8, max_length=128)


class OnboardingDetailsSubmit(BaseModel):
    """Employee self-submission. Unset fields keep their stored value."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    address: Optional[AddressSchema] = None
    emergency_contact: Optional[EmergencyContactSchema] = None
    department: Optional[str] = Field(None, max_length=100)
    designation: Optional[str] = Field(None, max_length=100)
    date_of_joining: Optional[date] = None


class EmployeeUpdate(BaseModel):
    """HR edit of profile fields. Admission state and the code are not editable."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    address: Optional[AddressSchema] = None
    emergency_contact: Optional[EmergencyContactSchema] = None
    department: Optional[str] = Field(None, max_length=100)
    designation: Optional[str] = Field(None, max_length=100)
    date_of_joining: Optional[date] = None


class OnboardingReview(BaseModel):
    decision: ReviewDecision
    comments: Optional[str] = Field(None, max_length=2000)


class OnboardingReminder(BaseModel):
    temporary_password: Optional[str] = Field(None, min_length=8, max_length=128)


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class EmployeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    employee_code: Optional[str] = None
    personal_email: str
    official_email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[dict] = None
    emergency_contact: Optional[dict] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    date_of_joining: Optional[date] = None
    onboarding_status: OnboardingStatus
    onboarding_submitted_at: Optional[datetime] = None
    onboarding_approved_at: Optional[datetime] = None
    onboarding_approved_by: Optional[uuid.UUID] = None
    onboarding_remarks: Optional[str] = None
    created_at: datetime


class TimelineEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    action: TimelineAction
    actor_id: Optional[uuid.UUID] = None
    details: Optional[str] = None
    timestamp: datetime


class OnboardingRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    initiated_by: Optional[uuid.UUID] = None
    personal_email: str
    official_email: str
    status: OnboardingRecordStatus
    submitted_payload: Optional[dict] = None
    invitation_sent_at: Optional[datetime] = None
    details_submitted_at: Optional[datetime] = None
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    review_comments: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    reminder_count: int = 0
    timeline: list[TimelineEntryOut] = []


class OnboardingInviteOut(BaseModel):
    employee: EmployeeOut
    record_id: uuid.UUID
    message: str = "Onboarding invitation sent successfully"
