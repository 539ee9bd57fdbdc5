"""
Gym Membership Service - Plan Change Request Model

A plan change is a three-call wizard: calculate, initiate, confirm. The
request row carries the quoted figures between calls and expires after a
short TTL so a stale quote can never be applied.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.utils.clock import utcnow


class PlanChangeStatus(str, Enum):
    """Plan change request lifecycle."""
    CALCULATED = "calculated"
    CONFIRMED = "confirmed"
    APPLIED = "applied"
    EXPIRED = "expired"


LIVE_STATUSES = (PlanChangeStatus.CALCULATED, PlanChangeStatus.CONFIRMED)


class PlanChangeRequest(Base):
    """
    Quoted plan change awaiting confirmation.
    """

    __tablename__ = "plan_change_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_plan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("membership_plans.id", ondelete="RESTRICT"), nullable=False
    )
    to_plan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("membership_plans.id", ondelete="RESTRICT"), nullable=False
    )
    # Record version the figures were computed against
    membership_version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Quoted figures (minor units)
    days_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    days_total: Mapped[int] = mapped_column(Integer, nullable=False)
    current_plan_balance: Mapped[int] = mapped_column(Integer, nullable=False)
    new_plan_price: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_difference: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_required: Mapped[bool] = mapped_column(Boolean, nullable=False)

    status: Mapped[PlanChangeStatus] = mapped_column(
        SQLEnum(PlanChangeStatus, values_callable=lambda x: [e.value for e in x]),
        default=PlanChangeStatus.CALCULATED,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def is_past_ttl(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def forfeited_credit(self) -> int:
        """Credit left over after paying for the new plan; never refunded."""
        return max(0, -self.balance_difference)

    def __repr__(self) -> str:
        return f"<PlanChangeRequest(id={self.id}, status={self.status.value})>"
