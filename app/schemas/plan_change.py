"""
Gym Membership Service - Plan Change Schemas

Pydantic schemas for the calculate / initiate / confirm workflow.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.plan_change import PlanChangeStatus


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class PlanChangeCalculateRequest(BaseModel):
    """Schema for quoting a plan change."""
    new_plan_id: int = Field(..., ge=1)


class PlanChangeInitiateRequest(BaseModel):
    """Schema for confirming a quote."""
    request_id: UUID


class PlanChangeConfirmRequest(BaseModel):
    """
    Schema for applying a confirmed quote.

    Free changes need the account password; paid ones need the payment
    reference returned by checkout.
    """
    request_id: UUID
    password: Optional[str] = Field(None, min_length=1, max_length=128)
    payment_reference: Optional[str] = Field(None, min_length=1, max_length=100)

    @model_validator(mode="after")
    def require_proof(self):
        if not self.password and not self.payment_reference:
            raise ValueError("Provide either password or payment_reference")
        return self


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class ProrationResponse(BaseModel):
    """Quoted figures for a plan change, in minor units."""
    model_config = ConfigDict(from_attributes=True)

    request_id: UUID = Field(..., validation_alias="id")
    status: PlanChangeStatus
    from_plan_id: int
    to_plan_id: int
    days_remaining: int
    days_total: int
    current_plan_balance: int
    new_plan_price: int
    balance_difference: int
    payment_required: bool
    credit_forfeited: int = Field(..., validation_alias="forfeited_credit")
    expires_at: datetime


class PlanChangeInitiateResponse(BaseModel):
    """What the member must do to finish the change."""
    request_id: UUID
    status: PlanChangeStatus
    payment_required: bool
    amount_due: int
    confirm_method: str
    checkout_url: Optional[str] = None
    confirm_endpoint: str
    expires_at: datetime
