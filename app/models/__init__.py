"""
Gym Membership Service - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin
from app.models.member import Member, MemberRole, STAFF_ROLES
from app.models.plan import MembershipPlan
from app.models.membership import (
    MembershipRecord,
    MembershipStatus,
    MembershipEvent,
    MembershipEventType,
    CancellationRecord,
)
from app.models.plan_change import PlanChangeRequest, PlanChangeStatus, LIVE_STATUSES
from app.models.balance import MemberBalanceTransaction, BalanceTransactionType

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    # Members
    "Member",
    "MemberRole",
    "STAFF_ROLES",
    # Catalog
    "MembershipPlan",
    # Membership
    "MembershipRecord",
    "MembershipStatus",
    "MembershipEvent",
    "MembershipEventType",
    "CancellationRecord",
    # Plan change
    "PlanChangeRequest",
    "PlanChangeStatus",
    "LIVE_STATUSES",
    # Ledger
    "MemberBalanceTransaction",
    "BalanceTransactionType",
]
