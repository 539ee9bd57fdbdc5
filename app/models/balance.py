"""
Gym Membership Service - Member Balance Ledger

Append-only ledger of money moving through a member's membership. Each row
carries the running balance after it was posted; a negative balance is an
amount the member owes. Credits are never carried forward or refunded, so a
plan change nets to zero on its own and the rows exist so the settlement can
be audited. Fresh purchases (signup, reactivation) post the plan price as
owed; the external checkout settles it.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.utils.clock import utcnow


class BalanceTransactionType(str, Enum):
    """Ledger entry kinds."""
    PRORATION_CREDIT = "proration_credit"   # + unused value of the old plan
    PLAN_CHARGE = "plan_charge"             # - price of the new plan
    PAYMENT = "payment"                     # + external payment received
    CREDIT_FORFEITED = "credit_forfeited"   # - credit exceeding the new price
    PLAN_PURCHASE = "plan_purchase"         # - price of a fresh purchase


class MemberBalanceTransaction(Base):
    """One ledger row."""

    __tablename__ = "member_balance_transactions"
    __table_args__ = (
        UniqueConstraint("member_id", "sequence", name="uq_member_balance_transactions_member_sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # 1-based position in the member's ledger
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[BalanceTransactionType] = mapped_column(
        SQLEnum(BalanceTransactionType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    amount_minor_units: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    # Plan change request id, payment reference or record version
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
