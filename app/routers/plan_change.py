"""
Gym Membership Service - Plan Change Router

The three-step plan change: calculate a quote, initiate (confirm) it, then
confirm with a password or payment reference to apply it.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_clock, get_current_active_member
from app.models.member import Member
from app.schemas.membership import MembershipResponse, membership_response
from app.schemas.plan_change import (
    PlanChangeCalculateRequest,
    PlanChangeConfirmRequest,
    PlanChangeInitiateRequest,
    PlanChangeInitiateResponse,
    ProrationResponse,
)
from app.services.payment_verification import PaymentVerifier, get_payment_verifier
from app.services.plan_change_service import PlanChangeService
from app.utils.clock import Clock


router = APIRouter()


@router.post(
    "/calculate",
    response_model=ProrationResponse,
    summary="Quote plan change",
    description=(
        "Prorate the current plan and price the switch. Safe to repeat; "
        "the previous quote is expired. Nothing about the membership changes."
    ),
)
async def calculate_plan_change(
    request: PlanChangeCalculateRequest,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Quote a plan change."""
    service = PlanChangeService(db, clock=clock)
    change = await service.calculate(current_member.id, request.new_plan_id)
    return ProrationResponse.model_validate(change)


@router.post(
    "/initiate",
    response_model=PlanChangeInitiateResponse,
    summary="Initiate plan change",
    description="Confirm a quote. Tells the caller whether to pay or re-enter their password.",
)
async def initiate_plan_change(
    request: PlanChangeInitiateRequest,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
):
    """Move a quote to confirmed."""
    service = PlanChangeService(db, payment_verifier=verifier, clock=clock)
    result = await service.initiate(current_member.id, request.request_id)
    change = result["request"]
    return PlanChangeInitiateResponse(
        request_id=change.id,
        status=change.status,
        payment_required=result["payment_required"],
        amount_due=result["amount_due"],
        confirm_method=result["confirm_method"],
        checkout_url=result["checkout_url"],
        confirm_endpoint="/api/v1/plan-change/confirm",
        expires_at=change.expires_at,
    )


@router.post(
    "/confirm",
    response_model=MembershipResponse,
    summary="Apply plan change",
    description=(
        "Apply a confirmed quote. Send the account password for free changes "
        "or the checkout payment reference for paid ones."
    ),
)
async def confirm_plan_change(
    request: PlanChangeConfirmRequest,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
):
    """Apply the plan change."""
    service = PlanChangeService(db, payment_verifier=verifier, clock=clock)
    record = await service.apply(
        current_member.id,
        request.request_id,
        password=request.password,
        payment_reference=request.payment_reference,
    )
    return membership_response(service.memberships.describe(record, clock()))
