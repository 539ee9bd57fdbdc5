"""
Gym Membership Service - Plan Catalog Service

Plans are never edited in place. Staff add new plans and retire old ones;
a plan can only be deleted while nothing has ever referenced it.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.membership import CancellationRecord, MembershipRecord
from app.models.plan import MembershipPlan
from app.models.plan_change import PlanChangeRequest
from app.utils.clock import Clock, utcnow
from app.utils.error_handling import PlanInUseException, PlanNotFoundException

logger = logging.getLogger(__name__)


# Starter catalog for new installs
DEFAULT_PLANS = [
    {
        "name": "Day Pass",
        "description": "Single-day access to the gym floor",
        "price_minor_units": 1500,
        "duration_months": 0,
        "features": ["Gym floor access", "Locker room"],
        "max_classes_per_month": 0,
    },
    {
        "name": "Basic",
        "description": "Essential gym access",
        "price_minor_units": 2999,
        "duration_months": 1,
        "features": ["Gym floor access", "Locker room", "4 group classes per month"],
        "max_classes_per_month": 4,
    },
    {
        "name": "Premium",
        "description": "Unlimited classes and one nutrition consultation",
        "price_minor_units": 5999,
        "duration_months": 1,
        "features": ["Gym floor access", "Unlimited group classes", "Nutrition consultation"],
        "max_classes_per_month": -1,
        "includes_nutrition_consultation": True,
    },
    {
        "name": "Elite",
        "description": "Everything in Premium plus personal training",
        "price_minor_units": 9999,
        "duration_months": 1,
        "features": [
            "Gym floor access",
            "Unlimited group classes",
            "Nutrition consultation",
            "Personal training sessions",
        ],
        "max_classes_per_month": -1,
        "includes_personal_training": True,
        "includes_nutrition_consultation": True,
    },
    {
        "name": "Premium Quarterly",
        "description": "Premium billed every three months",
        "price_minor_units": 16999,
        "duration_months": 3,
        "features": ["Gym floor access", "Unlimited group classes", "Nutrition consultation"],
        "max_classes_per_month": -1,
        "includes_nutrition_consultation": True,
    },
]


class PlanCatalogService:
    """Service for membership plan catalog operations."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def list_plans(self, include_retired: bool = False) -> List[MembershipPlan]:
        """Catalog ordered by price, cheapest first."""
        query = select(MembershipPlan)
        if not include_retired:
            query = query.where(MembershipPlan.is_retired == False)  # noqa: E712
        query = query.order_by(MembershipPlan.price_minor_units, MembershipPlan.id)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_plan(self, plan_id: int) -> MembershipPlan:
        """Get a plan by id, retired or not."""
        plan = await self.db.get(MembershipPlan, plan_id)
        if not plan:
            raise PlanNotFoundException(plan_id)
        return plan

    async def get_offered_plan(self, plan_id: int) -> MembershipPlan:
        """Get a plan a member may buy now. Retired plans are not offered."""
        plan = await self.get_plan(plan_id)
        if plan.is_retired:
            raise PlanNotFoundException(plan_id, retired=True)
        return plan

    async def create_plan(
        self,
        name: str,
        price_minor_units: int,
        duration_months: int,
        description: Optional[str] = None,
        features: Optional[List[str]] = None,
        max_classes_per_month: int = -1,
        includes_personal_training: bool = False,
        includes_nutrition_consultation: bool = False,
    ) -> MembershipPlan:
        """Add a plan to the catalog."""
        plan = MembershipPlan(
            name=name,
            description=description,
            price_minor_units=price_minor_units,
            duration_months=duration_months,
            features=list(features or []),
            max_classes_per_month=max_classes_per_month,
            includes_personal_training=includes_personal_training,
            includes_nutrition_consultation=includes_nutrition_consultation,
        )
        self.db.add(plan)
        await self.db.commit()
        await self.db.refresh(plan)

        logger.info(f"Plan created: id={plan.id} name={plan.name!r} price={plan.price_minor_units}")
        return plan

    async def retire_plan(self, plan_id: int) -> MembershipPlan:
        """Hide a plan from the catalog. Retiring twice is a no-op."""
        plan = await self.get_plan(plan_id)
        if plan.is_retired:
            return plan

        plan.is_retired = True
        plan.retired_at = self.clock()
        await self.db.commit()
        await self.db.refresh(plan)

        logger.info(f"Plan retired: id={plan.id}")
        return plan

    async def is_referenced(self, plan_id: int) -> bool:
        """True if any membership, request or cancellation points at the plan."""
        checks = [
            select(func.count()).select_from(MembershipRecord).where(MembershipRecord.plan_id == plan_id),
            select(func.count()).select_from(PlanChangeRequest).where(
                (PlanChangeRequest.from_plan_id == plan_id) | (PlanChangeRequest.to_plan_id == plan_id)
            ),
            select(func.count()).select_from(CancellationRecord).where(CancellationRecord.plan_id == plan_id),
        ]
        for query in checks:
            if (await self.db.execute(query)).scalar_one() > 0:
                return True
        return False

    async def delete_plan(self, plan_id: int) -> None:
        """Delete a plan nobody has ever used."""
        plan = await self.get_plan(plan_id)
        if await self.is_referenced(plan_id):
            raise PlanInUseException(plan_id)

        await self.db.delete(plan)
        await self.db.commit()
        logger.info(f"Plan deleted: id={plan_id}")

    async def seed_default_plans(self) -> int:
        """Create DEFAULT_PLANS when the catalog is empty. Returns plans created."""
        count = (await self.db.execute(select(func.count()).select_from(MembershipPlan))).scalar_one()
        if count:
            return 0

        for values in DEFAULT_PLANS:
            self.db.add(MembershipPlan(**values))
        await self.db.commit()

        logger.info(f"Seeded {len(DEFAULT_PLANS)} default membership plans")
        return len(DEFAULT_PLANS)
