"""
Gym Membership Service - Cancellation & Reactivation Service

Cancelling forfeits whatever is left of the current term. The forfeited
value is worked out with the proration formula (the plan priced against
itself) and written to an append-only cancellation record so the member can
be shown what they gave up.

Reactivation is a brand-new purchase on any offered plan. Nothing from the
cancelled term is credited.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.membership import (
    CancellationRecord,
    MembershipEventType,
    MembershipRecord,
    MembershipStatus,
)
from app.services.membership_service import MembershipService
from app.services.proration import value_lost
from app.utils.clock import Clock, utcnow
from app.utils.error_handling import InvalidStateException

logger = logging.getLogger(__name__)


# Profile fields a member may update while reactivating
PERSONAL_DATA_FIELDS = (
    "first_name",
    "last_name",
    "phone_number",
    "address",
    "emergency_contact_name",
    "emergency_contact_phone",
)


class CancellationService:
    """Service for cancelling and reactivating memberships."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.memberships = MembershipService(db, clock)

    async def cancel(self, member_id: uuid.UUID, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel an active or paused membership.

        Returns the cancellation record and the new membership version.
        """
        now = self.clock()
        async with self.memberships.transition(member_id):
            record = await self.memberships.load_for_transition(member_id, now)

            if record.status == MembershipStatus.CANCELLED:
                raise InvalidStateException(
                    "Membership is already cancelled",
                    current_status=record.status.value,
                    operation="cancel",
                )

            forfeited = value_lost(record, record.plan, now)
            cancellation = CancellationRecord(
                id=uuid.uuid4(),
                member_id=member_id,
                plan_id=record.plan_id,
                membership_version=record.version,
                days_left_at_cancellation=forfeited["days_left"],
                value_lost_minor_units=forfeited["value_lost"],
                reason=reason,
                cancelled_at=now,
            )
            self.db.add(cancellation)

            successor = record.successor(
                MembershipEventType.CANCEL,
                status=MembershipStatus.CANCELLED,
                auto_renew=False,
            )
            record = await self.memberships.swap(
                record,
                successor,
                MembershipEventType.CANCEL,
                now,
                details={
                    "cancellation_id": str(cancellation.id),
                    "days_left": forfeited["days_left"],
                    "value_lost_minor_units": forfeited["value_lost"],
                    "reason": reason,
                },
            )

        logger.info(
            f"Membership cancelled: member={member_id} days_left={cancellation.days_left_at_cancellation} "
            f"value_lost={cancellation.value_lost_minor_units}"
        )
        return {"cancellation": cancellation, "membership": record}

    async def reactivate(
        self,
        member_id: uuid.UUID,
        new_plan_id: int,
        personal_data: Optional[Dict[str, Any]] = None,
    ) -> MembershipRecord:
        """
        Start a fresh term on new_plan_id for a cancelled member.

        personal_data, if given, is applied to the member profile in the same
        transaction. Only the fields in PERSONAL_DATA_FIELDS are accepted.
        """
        now = self.clock()
        async with self.memberships.transition(member_id):
            record = await self.memberships.require_current_record(member_id)

            if record.status != MembershipStatus.CANCELLED:
                raise InvalidStateException(
                    "Only a cancelled membership can be reactivated",
                    current_status=record.effective_status(now).value,
                    operation="reactivate",
                )

            plan = await self.memberships.catalog.get_offered_plan(new_plan_id)

            if personal_data:
                member = await self.memberships.get_member(member_id)
                for field, value in personal_data.items():
                    if field in PERSONAL_DATA_FIELDS and value is not None:
                        setattr(member, field, value)

            record = await self.memberships.start_fresh_record(
                member_id,
                plan,
                now,
                reason=MembershipEventType.REACTIVATE,
                previous=record,
            )
        return record

    async def get_cancellations(self, member_id: uuid.UUID) -> List[CancellationRecord]:
        """Cancellation audit trail, newest first."""
        result = await self.db.execute(
            select(CancellationRecord)
            .where(CancellationRecord.member_id == member_id)
            .order_by(CancellationRecord.cancelled_at.desc())
        )
        return list(result.scalars().all())
