"""
Gym Membership Service - Member Balance Ledger Service

Appends ledger rows and reads the running balance. Rows are only ever added
inside a membership transition's transaction; the caller commits.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.balance import BalanceTransactionType, MemberBalanceTransaction


LedgerEntry = Tuple[BalanceTransactionType, int, Optional[str], Optional[str]]


class BalanceService:
    """Service for the member balance ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _last_entry(self, member_id: uuid.UUID) -> Optional[MemberBalanceTransaction]:
        result = await self.db.execute(
            select(MemberBalanceTransaction)
            .where(MemberBalanceTransaction.member_id == member_id)
            .order_by(MemberBalanceTransaction.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_balance(self, member_id: uuid.UUID) -> int:
        """Current balance in minor units. Negative means the member owes."""
        last = await self._last_entry(member_id)
        return last.balance_after if last else 0

    async def post_entries(
        self,
        member_id: uuid.UUID,
        entries: List[LedgerEntry],
        now: datetime,
    ) -> List[MemberBalanceTransaction]:
        """
        Add ledger rows in order, each carrying the running balance.

        entries are (type, signed amount, reference, description). Rows are
        added to the session and flushed with the rest of the transition.
        """
        last = await self._last_entry(member_id)
        balance = last.balance_after if last else 0
        sequence = last.sequence if last else 0

        rows = []
        for transaction_type, amount, reference, description in entries:
            balance += amount
            sequence += 1
            row = MemberBalanceTransaction(
                id=uuid.uuid4(),
                member_id=member_id,
                sequence=sequence,
                transaction_type=transaction_type,
                amount_minor_units=amount,
                balance_after=balance,
                reference=reference,
                description=description,
                created_at=now,
            )
            self.db.add(row)
            rows.append(row)
        return rows

    async def get_ledger(self, member_id: uuid.UUID) -> Dict[str, Any]:
        """Balance plus every ledger row, newest first."""
        result = await self.db.execute(
            select(MemberBalanceTransaction)
            .where(MemberBalanceTransaction.member_id == member_id)
            .order_by(MemberBalanceTransaction.sequence.desc())
        )
        transactions = list(result.scalars().all())
        return {
            "member_id": member_id,
            "balance": transactions[0].balance_after if transactions else 0,
            "transactions": transactions,
        }
