"""
Gym Membership Service - Subscription Pause Service

Handle subscription pause and resume operations.

Pausing extends the membership end date by the full pause length up front,
so the member never loses paid days. Resuming early does not hand back the
unused part of the pause: the end date stays where pausing put it.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.membership import MembershipEventType, MembershipRecord, MembershipStatus
from app.services.membership_service import MembershipService
from app.utils.clock import Clock, add_days, days_between, utcnow
from app.utils.error_handling import InvalidPauseDurationException, InvalidStateException

logger = logging.getLogger(__name__)


class SubscriptionPauseService:
    """
    Handle subscription pause and resume operations.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utcnow,
        allowed_durations: Optional[List[int]] = None,
    ):
        self.db = db
        self.clock = clock
        self.memberships = MembershipService(db, clock)
        self.allowed_durations = allowed_durations or settings.allowed_pause_durations_list

    async def pause(
        self,
        member_id: uuid.UUID,
        duration_days: int,
        reason: Optional[str] = None,
    ) -> MembershipRecord:
        """
        Pause an active membership for one of the allowed durations.

        Raises:
            InvalidPauseDurationException: duration not offered
            InvalidStateException: membership is paused or cancelled
        """
        if duration_days not in self.allowed_durations:
            raise InvalidPauseDurationException(duration_days, self.allowed_durations)

        now = self.clock()
        async with self.memberships.transition(member_id):
            record = await self.memberships.load_for_transition(member_id, now)

            if record.status == MembershipStatus.PAUSED:
                raise InvalidStateException(
                    f"Membership is already paused until {record.pause_end.isoformat()}",
                    current_status=record.status.value,
                    operation="pause",
                )
            if record.status != MembershipStatus.ACTIVE:
                raise InvalidStateException(
                    f"Cannot pause a {record.status.value} membership",
                    current_status=record.status.value,
                    operation="pause",
                )
            if record.is_expired(now):
                raise InvalidStateException(
                    f"Membership expired on {record.end_date.isoformat()}",
                    current_status="expired",
                    operation="pause",
                )

            pause_end = add_days(now, duration_days)
            successor = record.successor(
                MembershipEventType.PAUSE,
                status=MembershipStatus.PAUSED,
                end_date=add_days(record.end_date, duration_days),
                pause_start=now,
                pause_end=pause_end,
                pause_duration_days=duration_days,
                pause_reason=reason,
            )
            record = await self.memberships.swap(
                record,
                successor,
                MembershipEventType.PAUSE,
                now,
                details={
                    "duration_days": duration_days,
                    "pause_end": pause_end.isoformat(),
                    "previous_end_date": record.end_date.isoformat(),
                    "reason": reason,
                },
            )
        return record

    async def resume(self, member_id: uuid.UUID) -> MembershipRecord:
        """
        Resume a paused membership. The end date is left unchanged.

        Raises:
            InvalidStateException: membership is not paused
        """
        now = self.clock()
        async with self.memberships.transition(member_id):
            record = await self.memberships.load_for_transition(member_id, now)

            if record.status != MembershipStatus.PAUSED:
                raise InvalidStateException(
                    "Membership is not paused",
                    current_status=record.status.value,
                    operation="resume",
                )

            unused_days = max(0, days_between(now, record.pause_end))
            successor = record.successor(MembershipEventType.RESUME, status=MembershipStatus.ACTIVE)
            record = await self.memberships.swap(
                record,
                successor,
                MembershipEventType.RESUME,
                now,
                details={"unused_pause_days": unused_days, "end_date": successor.end_date.isoformat()},
            )
        return record

    async def get_pause_status(self, member_id: uuid.UUID) -> Dict[str, Any]:
        """Get the pause status for a membership."""
        now = self.clock()
        record = await self.memberships.require_current_record(member_id)
        effective = record.effective_status(now)
        is_paused = effective == MembershipStatus.PAUSED

        return {
            "is_paused": is_paused,
            "status": effective,
            "pause_start": record.pause_start if is_paused else None,
            "pause_end": record.pause_end if is_paused else None,
            "pause_duration_days": record.pause_duration_days if is_paused else None,
            "pause_reason": record.pause_reason if is_paused else None,
            "remaining_pause_days": max(0, days_between(now, record.pause_end)) if is_paused else 0,
            "allowed_durations": self.allowed_durations,
            "can_pause": effective == MembershipStatus.ACTIVE and not record.is_expired(now),
            "end_date": record.end_date,
        }
