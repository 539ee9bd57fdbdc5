"""
Gym Membership Service - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.plan import (
    PlanCreateRequest,
    PlanResponse,
    PlanSummary,
    PlanListResponse,
)
from app.schemas.membership import (
    SignupRequest,
    AutoRenewRequest,
    PauseWindowResponse,
    MembershipResponse,
    MembershipVersionResponse,
    MembershipHistoryResponse,
    AccessDecisionResponse,
    BalanceTransactionResponse,
    BalanceResponse,
    membership_response,
)
from app.schemas.plan_change import (
    PlanChangeCalculateRequest,
    PlanChangeInitiateRequest,
    PlanChangeConfirmRequest,
    ProrationResponse,
    PlanChangeInitiateResponse,
)
from app.schemas.subscription import (
    PauseRequest,
    CancelRequest,
    PersonalDataUpdate,
    ReactivateRequest,
    PauseStatusResponse,
    CancellationRecordResponse,
    CancelResponse,
    CancellationListResponse,
)

__all__ = [
    # Plans
    "PlanCreateRequest",
    "PlanResponse",
    "PlanSummary",
    "PlanListResponse",
    # Membership
    "SignupRequest",
    "AutoRenewRequest",
    "PauseWindowResponse",
    "MembershipResponse",
    "MembershipVersionResponse",
    "MembershipHistoryResponse",
    "AccessDecisionResponse",
    "BalanceTransactionResponse",
    "BalanceResponse",
    "membership_response",
    # Plan change
    "PlanChangeCalculateRequest",
    "PlanChangeInitiateRequest",
    "PlanChangeConfirmRequest",
    "ProrationResponse",
    "PlanChangeInitiateResponse",
    # Subscription
    "PauseRequest",
    "CancelRequest",
    "PersonalDataUpdate",
    "ReactivateRequest",
    "PauseStatusResponse",
    "CancellationRecordResponse",
    "CancelResponse",
    "CancellationListResponse",
]
