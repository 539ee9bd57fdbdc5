"""
Gym Membership Service - Proration Calculator

Pure functions: no database access, no clock reads. The caller passes "now".
All money is integer minor units and every division goes through
round_half_up so the same inputs always give the same cents.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

from app.models.membership import MembershipRecord
from app.models.plan import MembershipPlan
from app.utils.clock import days_between
from app.utils.error_handling import NoOpPlanChangeException


@dataclass(frozen=True)
class ProrationResult:
    """Figures quoted to a member before switching plans."""
    current_plan_id: int
    new_plan_id: int
    days_remaining: int
    days_total: int
    current_plan_balance: int
    new_plan_price: int
    balance_difference: int
    payment_required: bool

    @property
    def credit_forfeited(self) -> int:
        """Credit beyond the new plan's price. Never refunded or carried over."""
        return max(0, -self.balance_difference)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["credit_forfeited"] = self.credit_forfeited
        return data


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero (for non-negative input)."""
    quotient = Decimal(numerator) / Decimal(denominator)
    return int(quotient.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def proration_days_total(plan: MembershipPlan) -> int:
    """Days a plan's price is spread over. Single-day passes carry no credit."""
    if plan.is_single_day:
        return 0
    return plan.duration_days


def unused_value(record: MembershipRecord, plan: MembershipPlan, now: datetime) -> Dict[str, int]:
    """
    Credit for the unused part of the record's current term.

    Returns days_remaining, days_total and balance, with
    0 <= balance <= plan.price_minor_units.
    """
    days_total = proration_days_total(plan)
    days_remaining = min(max(0, days_between(now, record.end_date)), days_total)

    if days_total == 0:
        balance = 0
    else:
        balance = round_half_up(plan.price_minor_units * days_remaining, days_total)

    return {
        "days_remaining": days_remaining,
        "days_total": days_total,
        "balance": min(max(0, balance), plan.price_minor_units),
    }


def calculate_proration(
    record: MembershipRecord,
    current_plan: MembershipPlan,
    new_plan: MembershipPlan,
    now: datetime,
) -> ProrationResult:
    """
    Price a switch from current_plan to new_plan as of now.

    Raises:
        NoOpPlanChangeException: new_plan is the plan already held
    """
    if new_plan.id == current_plan.id:
        raise NoOpPlanChangeException(new_plan.id)

    unused = unused_value(record, current_plan, now)
    balance_difference = new_plan.price_minor_units - unused["balance"]

    return ProrationResult(
        current_plan_id=current_plan.id,
        new_plan_id=new_plan.id,
        days_remaining=unused["days_remaining"],
        days_total=unused["days_total"],
        current_plan_balance=unused["balance"],
        new_plan_price=new_plan.price_minor_units,
        balance_difference=balance_difference,
        payment_required=balance_difference > 0,
    )


def value_lost(record: MembershipRecord, plan: MembershipPlan, now: datetime) -> Dict[str, int]:
    """
    What a member forfeits by cancelling today: the plan priced against itself.

    Returns days_left and value_lost in minor units.
    """
    unused = unused_value(record, plan, now)
    return {
        "days_left": unused["days_remaining"],
        "value_lost": unused["balance"],
    }
