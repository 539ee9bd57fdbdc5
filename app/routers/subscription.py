"""
Gym Membership Service - Subscription Router

API endpoints for pause/resume, cancellation and reactivation.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_clock, get_current_active_member
from app.models.member import Member
from app.schemas.membership import MembershipResponse, membership_response
from app.schemas.subscription import (
    CancellationListResponse,
    CancellationRecordResponse,
    CancelRequest,
    CancelResponse,
    PauseRequest,
    PauseStatusResponse,
    ReactivateRequest,
)
from app.services.cancellation_service import CancellationService
from app.services.pause_service import SubscriptionPauseService
from app.utils.clock import Clock


router = APIRouter()


# ===========================================
# PAUSE / RESUME
# ===========================================

@router.get(
    "/pause-status",
    response_model=PauseStatusResponse,
    summary="Pause status",
)
async def get_pause_status(
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Get pause window, remaining days and allowed durations."""
    service = SubscriptionPauseService(db, clock)
    return PauseStatusResponse(**await service.get_pause_status(current_member.id))


@router.post(
    "/pause",
    response_model=MembershipResponse,
    summary="Pause membership",
    description="Pause an active membership. The end date moves out by the pause length.",
)
async def pause_membership(
    request: PauseRequest,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Pause the caller's membership."""
    service = SubscriptionPauseService(db, clock)
    record = await service.pause(current_member.id, request.duration_days, request.reason)
    return membership_response(service.memberships.describe(record, clock()))


@router.post(
    "/resume",
    response_model=MembershipResponse,
    summary="Resume membership",
    description="End a pause early. Unused pause days are not refunded.",
)
async def resume_membership(
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Resume the caller's membership."""
    service = SubscriptionPauseService(db, clock)
    record = await service.resume(current_member.id)
    return membership_response(service.memberships.describe(record, clock()))


# ===========================================
# CANCEL / REACTIVATE
# ===========================================

@router.post(
    "/cancel",
    response_model=CancelResponse,
    summary="Cancel membership",
    description="Cancel and forfeit the rest of the term. Returns what was forfeited.",
)
async def cancel_membership(
    request: CancelRequest,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Cancel the caller's membership."""
    service = CancellationService(db, clock)
    result = await service.cancel(current_member.id, request.reason)
    return CancelResponse(
        cancellation=CancellationRecordResponse.model_validate(result["cancellation"]),
        membership=membership_response(service.memberships.describe(result["membership"], clock())),
    )


@router.get(
    "/cancellations",
    response_model=CancellationListResponse,
    summary="Cancellation history",
)
async def list_cancellations(
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
):
    """List the caller's cancellations, newest first."""
    service = CancellationService(db)
    cancellations = await service.get_cancellations(current_member.id)
    return CancellationListResponse(
        cancellations=[CancellationRecordResponse.model_validate(c) for c in cancellations],
        total=len(cancellations),
    )


@router.post(
    "/reactivate",
    response_model=MembershipResponse,
    summary="Reactivate membership",
    description="Buy a fresh term after cancelling. No credit carries over from the cancelled plan.",
)
async def reactivate_membership(
    request: ReactivateRequest,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Reactivate the caller's membership."""
    service = CancellationService(db, clock)
    personal_data = request.personal_data.model_dump(exclude_none=True) if request.personal_data else None
    record = await service.reactivate(current_member.id, request.new_plan_id, personal_data)
    return membership_response(service.memberships.describe(record, clock()))
