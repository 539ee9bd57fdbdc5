"""
Gym Membership Service - Membership Service

Owns the current membership record of each member. Every state change goes
through a version swap:

1. the current row is closed with a guarded UPDATE (id, is_current, version)
2. its successor is inserted as the new current row
3. a membership event is written next to it

All three are flushed in the caller's transaction. A swap that finds the row
already closed, or trips the one-current-row index, raises
ConcurrentModificationException and nothing is written.

Transitions for one member are also serialized in-process with an
asyncio.Lock so two requests in the same worker do not race each other into
the database.
"""

import asyncio
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.models.balance import BalanceTransactionType
from app.models.member import Member
from app.models.plan import MembershipPlan
from app.models.membership import (
    MembershipEvent,
    MembershipEventType,
    MembershipRecord,
    MembershipStatus,
)
from app.services.balance_service import BalanceService
from app.services.plan_catalog_service import PlanCatalogService
from app.utils.clock import Clock, add_days, utcnow
from app.utils.error_handling import (
    ConcurrentModificationException,
    ConflictException,
    InvalidStateException,
    MemberNotFoundException,
    MembershipInactiveException,
    MembershipNotFoundException,
)

logger = logging.getLogger(__name__)


# ===========================================
# PER-MEMBER LOCKS
# ===========================================

_member_locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


def member_lock(member_id: uuid.UUID) -> asyncio.Lock:
    """The in-process lock serializing transitions for one member."""
    lock = _member_locks.get(member_id)
    if lock is None:
        lock = asyncio.Lock()
        _member_locks[member_id] = lock
    return lock


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class MembershipService:
    """Service for membership records, history and the access guard."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.catalog = PlanCatalogService(db, clock)
        self.balance = BalanceService(db)

    # ===========================================
    # TRANSACTION HANDLING
    # ===========================================

    @asynccontextmanager
    async def transition(self, member_id: uuid.UUID) -> AsyncIterator[None]:
        """
        Run a state change for one member.

        Holds the member's lock and commits on success. Any error rolls the
        whole session back; a uniqueness violation surfaces as a concurrent
        modification.
        """
        async with member_lock(member_id):
            try:
                yield
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                logger.warning(f"Membership write conflict for member {member_id}: {e.orig}")
                raise ConcurrentModificationException(member_id) from e
            except Exception:
                await self.db.rollback()
                raise

    # ===========================================
    # LOOKUPS
    # ===========================================

    async def get_member(self, member_id: uuid.UUID) -> Member:
        member = await self.db.get(Member, member_id)
        if not member:
            raise MemberNotFoundException(member_id)
        return member

    async def get_current_record(self, member_id: uuid.UUID) -> Optional[MembershipRecord]:
        """Read the current record fresh from the database."""
        result = await self.db.execute(
            select(MembershipRecord)
            .where(MembershipRecord.member_id == member_id)
            .where(MembershipRecord.is_current == True)  # noqa: E712
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_current_record(self, member_id: uuid.UUID) -> MembershipRecord:
        record = await self.get_current_record(member_id)
        if not record:
            raise MembershipNotFoundException(member_id)
        return record

    async def get_history(self, member_id: uuid.UUID) -> List[MembershipRecord]:
        """All versions, newest first."""
        result = await self.db.execute(
            select(MembershipRecord)
            .where(MembershipRecord.member_id == member_id)
            .order_by(MembershipRecord.version.desc())
        )
        return list(result.scalars().all())

    # ===========================================
    # VERSION SWAP
    # ===========================================

    async def close_current(self, current: MembershipRecord, now: datetime) -> None:
        """
        Mark current as history, guarded on it still being the current version.

        Raises:
            ConcurrentModificationException: another transition closed it first
        """
        result = await self.db.execute(
            update(MembershipRecord)
            .where(MembershipRecord.id == current.id)
            .where(MembershipRecord.is_current == True)  # noqa: E712
            .where(MembershipRecord.version == current.version)
            .values(is_current=False, superseded_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationException(current.member_id, expected_version=current.version)

        set_committed_value(current, "is_current", False)
        set_committed_value(current, "superseded_at", now)

    async def swap(
        self,
        current: MembershipRecord,
        successor: MembershipRecord,
        event_type: MembershipEventType,
        now: datetime,
        details: Optional[Dict[str, Any]] = None,
    ) -> MembershipRecord:
        """Close current, insert successor and its event. Caller commits."""
        await self.close_current(current, now)

        successor.created_at = now
        successor.updated_at = now
        self.db.add(successor)
        self.record_event(
            current.member_id,
            event_type,
            now,
            from_version=current.version,
            to_version=successor.version,
            details=details,
        )
        await self.db.flush()

        logger.info(
            f"Membership {event_type.value}: member={current.member_id} "
            f"v{current.version} -> v{successor.version} status={successor.status.value}"
        )
        return successor

    def record_event(
        self,
        member_id: uuid.UUID,
        event_type: MembershipEventType,
        now: datetime,
        to_version: int,
        from_version: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> MembershipEvent:
        event = MembershipEvent(
            id=uuid.uuid4(),
            member_id=member_id,
            event_type=event_type,
            from_version=from_version,
            to_version=to_version,
            details=details,
            created_at=now,
        )
        self.db.add(event)
        return event

    async def settle_elapsed_pause(self, record: MembershipRecord, now: datetime) -> MembershipRecord:
        """Materialize an elapsed pause as an active version. Caller commits."""
        if not record.pause_elapsed(now):
            return record

        successor = record.successor(MembershipEventType.AUTO_RESUME, status=MembershipStatus.ACTIVE)
        return await self.swap(
            record,
            successor,
            MembershipEventType.AUTO_RESUME,
            now,
            details={"pause_start": _iso(record.pause_start), "pause_end": _iso(record.pause_end)},
        )

    async def load_for_transition(self, member_id: uuid.UUID, now: datetime) -> MembershipRecord:
        """Current record with any elapsed pause settled first."""
        record = await self.require_current_record(member_id)
        return await self.settle_elapsed_pause(record, now)

    # ===========================================
    # QUERIES
    # ===========================================

    def describe(self, record: MembershipRecord, now: datetime) -> Dict[str, Any]:
        """Record plus the figures derived from it as of now."""
        return {
            "id": record.id,
            "member_id": record.member_id,
            "version": record.version,
            "plan": record.plan,
            "status": record.effective_status(now),
            "stored_status": record.status,
            "start_date": record.start_date,
            "end_date": record.end_date,
            "auto_renew": record.auto_renew,
            "pause_window": record.pause_window() if record.effective_status(now) == MembershipStatus.PAUSED else None,
            "days_remaining": record.days_remaining(now),
            "is_expired": record.is_expired(now),
            "change_reason": record.change_reason,
            "is_current": record.is_current,
            "superseded_at": record.superseded_at,
        }

    async def get_membership(self, member_id: uuid.UUID) -> Dict[str, Any]:
        record = await self.require_current_record(member_id)
        return self.describe(record, self.clock())

    # ===========================================
    # SIGNUP & SETTINGS
    # ===========================================

    async def signup(self, member_id: uuid.UUID, plan_id: int) -> MembershipRecord:
        """First membership for a member who has none."""
        now = self.clock()
        async with self.transition(member_id):
            await self.get_member(member_id)
            if await self.get_current_record(member_id):
                raise ConflictException(
                    "Member already has a membership",
                    resource_type="Membership",
                    details={"member_id": str(member_id)},
                )
            plan = await self.catalog.get_offered_plan(plan_id)
            record = await self.start_fresh_record(
                member_id, plan, now, reason=MembershipEventType.SIGNUP
            )
        return record

    async def start_fresh_record(
        self,
        member_id: uuid.UUID,
        plan: MembershipPlan,
        now: datetime,
        reason: MembershipEventType,
        previous: Optional[MembershipRecord] = None,
    ) -> MembershipRecord:
        """
        Insert a brand-new active term on plan, owed in full.

        Used by signup (no previous record) and reactivation (previous is the
        cancelled record, closed here). No credit carries over.
        """
        from_version = None
        version = 1
        if previous is not None:
            await self.close_current(previous, now)
            from_version = previous.version
            version = previous.version + 1

        record = MembershipRecord(
            id=uuid.uuid4(),
            member_id=member_id,
            plan_id=plan.id,
            plan=plan,
            version=version,
            is_current=True,
            start_date=now,
            end_date=add_days(now, plan.duration_days),
            status=MembershipStatus.ACTIVE,
            auto_renew=True,
            change_reason=reason,
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        self.record_event(
            member_id,
            reason,
            now,
            from_version=from_version,
            to_version=version,
            details={"plan_id": plan.id, "price_minor_units": plan.price_minor_units},
        )
        await self.balance.post_entries(
            member_id,
            [(
                BalanceTransactionType.PLAN_PURCHASE,
                -plan.price_minor_units,
                f"membership:v{version}",
                f"{plan.name} purchase",
            )],
            now,
        )
        await self.db.flush()

        logger.info(f"Membership {reason.value}: member={member_id} v{version} plan={plan.id}")
        return record

    async def set_auto_renew(self, member_id: uuid.UUID, enabled: bool) -> MembershipRecord:
        """Flip the auto-renew flag. Unchanged flag returns the record as is."""
        now = self.clock()
        async with self.transition(member_id):
            record = await self.load_for_transition(member_id, now)
            if record.status == MembershipStatus.CANCELLED:
                raise InvalidStateException(
                    "Auto-renew cannot be changed on a cancelled membership",
                    current_status=record.status.value,
                    operation="set_auto_renew",
                )
            if record.auto_renew != enabled:
                successor = record.successor(
                    MembershipEventType.AUTO_RENEW_CHANGED,
                    auto_renew=enabled,
                    pause_start=record.pause_start,
                    pause_end=record.pause_end,
                    pause_duration_days=record.pause_duration_days,
                    pause_reason=record.pause_reason,
                )
                record = await self.swap(
                    record,
                    successor,
                    MembershipEventType.AUTO_RENEW_CHANGED,
                    now,
                    details={"auto_renew": enabled},
                )
        return record

    # ===========================================
    # ACCESS GUARD
    # ===========================================

    async def check_access(self, member_id: uuid.UUID) -> Dict[str, Any]:
        """Whether the member may use paid features right now."""
        now = self.clock()
        record = await self.get_current_record(member_id)

        if not record:
            return {"member_id": member_id, "allowed": False, "status": "none", "reason": "No membership"}

        status_value = record.effective_status(now).value
        if record.status == MembershipStatus.CANCELLED:
            reason = "Membership is cancelled"
        elif record.effective_status(now) == MembershipStatus.PAUSED:
            reason = f"Membership is paused until {record.pause_end.isoformat()}"
        elif record.is_expired(now):
            status_value = "expired"
            reason = f"Membership expired on {record.end_date.isoformat()}"
        else:
            reason = None

        return {
            "member_id": member_id,
            "allowed": reason is None,
            "status": status_value,
            "reason": reason,
            "days_remaining": record.days_remaining(now),
        }

    async def ensure_member_can_use_paid_features(self, member_id: uuid.UUID) -> MembershipRecord:
        """
        Re-read the member's status and deny anything but an active term.

        Raises:
            MembershipInactiveException: cancelled, paused, expired or missing
        """
        decision = await self.check_access(member_id)
        if not decision["allowed"]:
            logger.info(f"Paid feature denied for member {member_id}: {decision['status']}")
            raise MembershipInactiveException(member_id, decision["status"])
        return await self.require_current_record(member_id)
