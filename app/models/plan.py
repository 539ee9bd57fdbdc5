"""
Gym Membership Service - Membership Plan Model

Plans are immutable once any membership references them. A price change is
a new plan; the old one is retired (hidden from the catalog) but kept.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import TimestampMixin
from app.utils.clock import DAYS_PER_MONTH


class MembershipPlan(Base, TimestampMixin):
    """
    A membership plan in the catalog.

    Prices are integer minor units (cents). duration_months = 0 is a
    single-day pass.
    """

    __tablename__ = "membership_plans"
    __table_args__ = (
        CheckConstraint("price_minor_units >= 0", name="price_non_negative"),
        CheckConstraint("duration_months >= 0", name="duration_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price_minor_units: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)
    features: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    # Entitlements shown in the catalog (-1 = unlimited)
    max_classes_per_month: Mapped[int] = mapped_column(Integer, default=-1, nullable=False)
    includes_personal_training: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    includes_nutrition_consultation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Retirement hides the plan from the catalog without deleting it
    is_retired: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    retired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def is_single_day(self) -> bool:
        return self.duration_months == 0

    @property
    def duration_days(self) -> int:
        """Length of one term of this plan. A single-day pass lasts one day."""
        if self.is_single_day:
            return 1
        return self.duration_months * DAYS_PER_MONTH

    def __repr__(self) -> str:
        return f"<MembershipPlan(id={self.id}, name={self.name!r})>"
