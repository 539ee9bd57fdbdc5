"""
Gym Membership Service - Membership Schemas

Pydantic schemas for membership reads, settings and the balance ledger.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.balance import BalanceTransactionType
from app.models.membership import MembershipEventType, MembershipStatus
from app.schemas.plan import PlanSummary


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class SignupRequest(BaseModel):
    """Schema for starting a first membership."""
    plan_id: int = Field(..., ge=1)
    member_id: Optional[UUID] = Field(
        None,
        description="Front desk only: sign up another member",
    )


class AutoRenewRequest(BaseModel):
    """Schema for toggling auto-renew."""
    enabled: bool


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class PauseWindowResponse(BaseModel):
    """Pause window on a paused membership."""
    pause_start: datetime
    pause_end: datetime
    duration_days: int
    reason: Optional[str] = None


class MembershipResponse(BaseModel):
    """Current membership with derived figures."""
    id: UUID
    member_id: UUID
    version: int
    plan: PlanSummary
    status: MembershipStatus
    start_date: datetime
    end_date: datetime
    auto_renew: bool
    pause_window: Optional[PauseWindowResponse] = None
    days_remaining: int
    is_expired: bool
    change_reason: MembershipEventType


class MembershipVersionResponse(BaseModel):
    """One historical version of a membership."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    version: int
    plan_id: int
    status: MembershipStatus
    start_date: datetime
    end_date: datetime
    auto_renew: bool
    pause_start: Optional[datetime] = None
    pause_end: Optional[datetime] = None
    pause_duration_days: Optional[int] = None
    change_reason: MembershipEventType
    is_current: bool
    created_at: datetime
    superseded_at: Optional[datetime] = None


class MembershipHistoryResponse(BaseModel):
    """All versions, newest first."""
    versions: List[MembershipVersionResponse]
    total: int


class AccessDecisionResponse(BaseModel):
    """Whether the member may use paid features right now."""
    member_id: UUID
    allowed: bool
    status: str
    reason: Optional[str] = None
    days_remaining: int = 0


class BalanceTransactionResponse(BaseModel):
    """One ledger row."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sequence: int
    transaction_type: BalanceTransactionType
    amount_minor_units: int
    balance_after: int
    reference: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class BalanceResponse(BaseModel):
    """Ledger balance and rows. A negative balance is an amount owed."""
    member_id: UUID
    balance: int
    transactions: List[BalanceTransactionResponse]


def membership_response(view: dict) -> MembershipResponse:
    """Build the response from MembershipService.describe() output."""
    data = {name: view[name] for name in MembershipResponse.model_fields if name in view}
    data["plan"] = PlanSummary.model_validate(view["plan"])
    return MembershipResponse(**data)
