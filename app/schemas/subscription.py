"""
Gym Membership Service - Subscription Schemas

Pydantic schemas for pause/resume, cancellation and reactivation.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.membership import MembershipStatus
from app.schemas.membership import MembershipResponse


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class PauseRequest(BaseModel):
    """Schema for pausing a membership."""
    duration_days: int = Field(..., description="One of the allowed pause durations (15, 30, 90)")
    reason: Optional[str] = Field(None, max_length=500)


class CancelRequest(BaseModel):
    """Schema for cancelling a membership."""
    reason: Optional[str] = Field(None, max_length=500)


class PersonalDataUpdate(BaseModel):
    """Profile fields a member confirms when reactivating."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    emergency_contact_name: Optional[str] = Field(None, max_length=200)
    emergency_contact_phone: Optional[str] = Field(None, max_length=20)


class ReactivateRequest(BaseModel):
    """Schema for buying a fresh membership after cancelling."""
    new_plan_id: int = Field(..., ge=1)
    personal_data: Optional[PersonalDataUpdate] = None


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class PauseStatusResponse(BaseModel):
    """Pause state of the current membership."""
    is_paused: bool
    status: MembershipStatus
    pause_start: Optional[datetime] = None
    pause_end: Optional[datetime] = None
    pause_duration_days: Optional[int] = None
    pause_reason: Optional[str] = None
    remaining_pause_days: int
    allowed_durations: List[int]
    can_pause: bool
    end_date: datetime


class CancellationRecordResponse(BaseModel):
    """What was forfeited by a cancellation."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_id: int
    membership_version: int
    days_left_at_cancellation: int
    value_lost_minor_units: int
    reason: Optional[str] = None
    cancelled_at: datetime


class CancelResponse(BaseModel):
    """Cancellation summary plus the cancelled membership."""
    cancellation: CancellationRecordResponse
    membership: MembershipResponse


class CancellationListResponse(BaseModel):
    """Cancellation audit trail."""
    cancellations: List[CancellationRecordResponse]
    total: int
