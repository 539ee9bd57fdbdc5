"""
Gym Membership Service - Plan Catalog Router

API endpoints for browsing and administering membership plans.
"""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_clock, get_current_active_member, require_staff
from app.models.member import Member
from app.schemas.plan import PlanCreateRequest, PlanListResponse, PlanResponse
from app.services.plan_catalog_service import PlanCatalogService
from app.utils.clock import Clock


router = APIRouter()


@router.get(
    "",
    response_model=PlanListResponse,
    summary="List plans",
    description="Membership plans on offer, cheapest first.",
)
async def list_plans(
    include_retired: bool = Query(False, description="Include plans no longer on offer"),
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
):
    """List catalog plans."""
    service = PlanCatalogService(db)
    plans = await service.list_plans(include_retired=include_retired)
    return PlanListResponse(
        plans=[PlanResponse.model_validate(plan) for plan in plans],
        total=len(plans),
    )


@router.get(
    "/{plan_id}",
    response_model=PlanResponse,
    summary="Get plan",
)
async def get_plan(
    plan_id: int,
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
):
    """Get a single plan, retired or not."""
    service = PlanCatalogService(db)
    plan = await service.get_plan(plan_id)
    return PlanResponse.model_validate(plan)


@router.post(
    "",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create plan",
    description="Add a plan to the catalog. Front desk and admin only.",
)
async def create_plan(
    request: PlanCreateRequest,
    staff_member: Member = Depends(require_staff()),
    db: AsyncSession = Depends(get_async_session),
):
    """Create a new plan. Existing plans are never edited; create a new one instead."""
    service = PlanCatalogService(db)
    plan = await service.create_plan(**request.model_dump())
    return PlanResponse.model_validate(plan)


@router.post(
    "/{plan_id}/retire",
    response_model=PlanResponse,
    summary="Retire plan",
    description="Hide a plan from the catalog. Current members keep it until they change plans.",
)
async def retire_plan(
    plan_id: int,
    staff_member: Member = Depends(require_staff()),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
):
    """Retire a plan."""
    service = PlanCatalogService(db, clock)
    plan = await service.retire_plan(plan_id)
    return PlanResponse.model_validate(plan)


@router.delete(
    "/{plan_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete plan",
    description="Delete a plan that no membership has ever referenced.",
)
async def delete_plan(
    plan_id: int,
    staff_member: Member = Depends(require_staff()),
    db: AsyncSession = Depends(get_async_session),
):
    """Delete an unused plan."""
    service = PlanCatalogService(db)
    await service.delete_plan(plan_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
