"""
Gym Membership Service - Membership Models

Membership records are versioned: every state transition closes the current
row and inserts its successor. Closed rows are history and are never edited
again. Cancellation records and membership events are append-only.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    Uuid,
    Enum as SQLEnum,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.base import BaseModel
from app.utils.clock import days_between, utcnow

if TYPE_CHECKING:
    from app.models.member import Member
    from app.models.plan import MembershipPlan


class MembershipStatus(str, Enum):
    """Stored membership status."""
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class MembershipEventType(str, Enum):
    """What produced a membership version."""
    SIGNUP = "signup"
    PLAN_CHANGE = "plan_change"
    PAUSE = "pause"
    RESUME = "resume"
    AUTO_RESUME = "auto_resume"
    CANCEL = "cancel"
    REACTIVATE = "reactivate"
    AUTO_RENEW_CHANGED = "auto_renew_changed"


class MembershipRecord(BaseModel):
    """
    One version of a member's subscription.

    Exactly one row per member has is_current = true. The partial unique
    index enforces it at the database level so two concurrent swaps cannot
    both commit.
    """

    __tablename__ = "membership_records"
    __table_args__ = (
        UniqueConstraint("member_id", "version", name="uq_membership_records_member_version"),
        CheckConstraint("end_date > start_date", name="end_after_start"),
        Index(
            "uq_membership_records_current_member",
            "member_id",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )

    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("membership_plans.id", ondelete="RESTRICT"),
        nullable=False,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[MembershipStatus] = mapped_column(
        SQLEnum(MembershipStatus, values_callable=lambda x: [e.value for e in x]),
        default=MembershipStatus.ACTIVE,
        nullable=False,
    )
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Pause window (all null unless status = paused)
    pause_start: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    pause_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    pause_duration_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pause_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    change_reason: Mapped[MembershipEventType] = mapped_column(
        SQLEnum(MembershipEventType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    superseded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    member: Mapped["Member"] = relationship("Member", back_populates="memberships", lazy="raise")
    plan: Mapped["MembershipPlan"] = relationship("MembershipPlan", lazy="selectin")

    # ===========================================
    # DERIVED STATE
    # ===========================================

    @property
    def has_pause_window(self) -> bool:
        return self.pause_start is not None and self.pause_end is not None

    def pause_elapsed(self, now: datetime) -> bool:
        """True when a paused record's window has run out."""
        return (
            self.status == MembershipStatus.PAUSED
            and self.pause_end is not None
            and self.pause_end <= now
        )

    def effective_status(self, now: datetime) -> MembershipStatus:
        """Status as of now, treating an elapsed pause as active."""
        if self.pause_elapsed(now):
            return MembershipStatus.ACTIVE
        return self.status

    def days_remaining(self, now: datetime) -> int:
        return max(0, days_between(now, self.end_date))

    def is_expired(self, now: datetime) -> bool:
        return self.status != MembershipStatus.CANCELLED and self.end_date <= now

    def pause_window(self) -> Optional[Dict[str, Any]]:
        if not self.has_pause_window:
            return None
        return {
            "pause_start": self.pause_start,
            "pause_end": self.pause_end,
            "duration_days": self.pause_duration_days,
            "reason": self.pause_reason,
        }

    def successor(self, reason: MembershipEventType, **changes: Any) -> "MembershipRecord":
        """
        Build the next version of this record.

        Fields not named in changes are carried over, except the pause window
        which must be passed explicitly to survive. Pass plan= to switch plans.
        """
        plan = changes.pop("plan", None) or self.plan
        values = {
            "member_id": self.member_id,
            "plan_id": plan.id,
            "plan": plan,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "status": self.status,
            "auto_renew": self.auto_renew,
            "pause_start": None,
            "pause_end": None,
            "pause_duration_days": None,
            "pause_reason": None,
        }
        values.update(changes)
        return MembershipRecord(
            id=uuid.uuid4(),
            version=self.version + 1,
            is_current=True,
            change_reason=reason,
            **values,
        )


class MembershipEvent(Base):
    """
    Append-only audit trail of membership transitions.

    Written in the same transaction as the version swap it describes.
    """

    __tablename__ = "membership_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[MembershipEventType] = mapped_column(
        SQLEnum(MembershipEventType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    from_version: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    to_version: Mapped[int] = mapped_column(Integer, nullable=False)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class CancellationRecord(Base):
    """
    Disclosure of what a member forfeited when cancelling. Never mutated.
    """

    __tablename__ = "cancellation_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("membership_plans.id", ondelete="RESTRICT"),
        nullable=False,
    )
    membership_version: Mapped[int] = mapped_column(Integer, nullable=False)
    days_left_at_cancellation: Mapped[int] = mapped_column(Integer, nullable=False)
    value_lost_minor_units: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cancelled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
