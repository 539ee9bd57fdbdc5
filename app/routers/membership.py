"""
Gym Membership Service - Membership Router

API endpoints for reading the current membership, its history, the access
decision, the balance ledger and the auto-renew setting.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_clock, get_current_active_member
from app.models.member import Member
from app.schemas.membership import (
    AccessDecisionResponse,
    AutoRenewRequest,
    BalanceResponse,
    BalanceTransactionResponse,
    MembershipHistoryResponse,
    MembershipResponse,
    MembershipVersionResponse,
    SignupRequest,
    membership_response,
)
from app.services.balance_service import BalanceService
from app.services.membership_service import MembershipService
from app.utils.clock import Clock


router = APIRouter()


@router.get(
    "",
    response_model=MembershipResponse,
    summary="Get membership",
    description="Current membership with days remaining and effective status.",
)
async def get_membership(
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Get the caller's current membership."""
    service = MembershipService(db, clock)
    return membership_response(await service.get_membership(current_member.id))


@router.get(
    "/history",
    response_model=MembershipHistoryResponse,
    summary="Membership history",
    description="Every version of the caller's membership, newest first.",
)
async def get_history(
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
):
    """List membership versions."""
    service = MembershipService(db)
    records = await service.get_history(current_member.id)
    return MembershipHistoryResponse(
        versions=[MembershipVersionResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get(
    "/access",
    response_model=AccessDecisionResponse,
    summary="Paid feature access",
    description="Whether the caller may use paid features right now.",
)
async def get_access(
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Check access without raising."""
    service = MembershipService(db, clock)
    return AccessDecisionResponse(**await service.check_access(current_member.id))


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Balance ledger",
    description="Running balance and ledger rows. A negative balance is an amount owed.",
)
async def get_balance(
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
):
    """Get the caller's ledger."""
    service = BalanceService(db)
    ledger = await service.get_ledger(current_member.id)
    return BalanceResponse(
        member_id=ledger["member_id"],
        balance=ledger["balance"],
        transactions=[BalanceTransactionResponse.model_validate(t) for t in ledger["transactions"]],
    )


@router.patch(
    "/auto-renew",
    response_model=MembershipResponse,
    summary="Set auto-renew",
)
async def set_auto_renew(
    request: AutoRenewRequest,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Turn auto-renew on or off."""
    service = MembershipService(db, clock)
    record = await service.set_auto_renew(current_member.id, request.enabled)
    return membership_response(service.describe(record, clock()))


@router.post(
    "/signup",
    response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start membership",
    description="First membership for a member without one. Front desk may sign up another member.",
)
async def signup(
    request: SignupRequest,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Buy a first membership."""
    member_id = current_member.id
    if request.member_id and request.member_id != current_member.id:
        if not current_member.is_staff:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only front desk staff can sign up other members",
            )
        member_id = request.member_id

    service = MembershipService(db, clock)
    record = await service.signup(member_id, request.plan_id)
    return membership_response(service.describe(record, clock()))
