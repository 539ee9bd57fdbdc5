"""
Gym Membership Service - Plan Change Service

calculate -> initiate -> apply, as three calls.

calculate quotes the switch and stores it as a request; it never touches the
membership. initiate moves the request to confirmed and tells the caller
whether to pay or re-enter their password. apply checks that proof and swaps
the membership to the new plan.

A request lives for plan_change_ttl_minutes. Expiry is checked when the
request is used; a stale request is marked expired and must be recalculated.
Only one live request exists per member: calculating again expires the old
one.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.balance import BalanceTransactionType
from app.models.membership import MembershipEventType, MembershipRecord, MembershipStatus
from app.models.plan_change import LIVE_STATUSES, PlanChangeRequest, PlanChangeStatus
from app.services.membership_service import MembershipService
from app.services.payment_verification import PaymentVerifier
from app.services.proration import ProrationResult, calculate_proration
from app.utils.clock import Clock, add_days, utcnow
from app.utils.error_handling import (
    ConcurrentModificationException,
    InvalidStateException,
    PlanChangeRequestNotFoundException,
    ReauthenticationFailedException,
    RequestExpiredException,
    ValidationException,
)
from app.utils.security import verify_password

logger = logging.getLogger(__name__)


class PlanChangeService:
    """Service for the plan change workflow."""

    def __init__(
        self,
        db: AsyncSession,
        payment_verifier: Optional[PaymentVerifier] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.clock = clock
        self.payment_verifier = payment_verifier
        self.memberships = MembershipService(db, clock)
        self.ttl = timedelta(minutes=settings.plan_change_ttl_minutes)

    # ===========================================
    # HELPERS
    # ===========================================

    async def _get_request(self, member_id: uuid.UUID, request_id: uuid.UUID) -> PlanChangeRequest:
        """A request the member owns. Someone else's request is reported missing."""
        result = await self.db.execute(
            select(PlanChangeRequest)
            .where(PlanChangeRequest.id == request_id)
            .where(PlanChangeRequest.member_id == member_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise PlanChangeRequestNotFoundException(request_id)
        return request

    def _expire(self, request: PlanChangeRequest, now: datetime) -> None:
        request.status = PlanChangeStatus.EXPIRED
        request.expired_at = now
        logger.info(f"Plan change request {request.id} expired for member {request.member_id}")

    async def _supersede_live_requests(self, member_id: uuid.UUID, now: datetime) -> None:
        await self.db.execute(
            update(PlanChangeRequest)
            .where(PlanChangeRequest.member_id == member_id)
            .where(PlanChangeRequest.status.in_(LIVE_STATUSES))
            .values(status=PlanChangeStatus.EXPIRED, expired_at=now)
            .execution_options(synchronize_session=False)
        )

    def _ensure_changeable(self, record: MembershipRecord, operation: str) -> None:
        if record.status == MembershipStatus.CANCELLED:
            raise InvalidStateException(
                "A cancelled membership cannot change plans. Reactivate instead.",
                current_status=record.status.value,
                operation=operation,
            )

    # ===========================================
    # CALCULATE
    # ===========================================

    async def calculate(self, member_id: uuid.UUID, new_plan_id: int) -> PlanChangeRequest:
        """
        Quote a switch to new_plan_id and store it as a calculated request.

        Safe to repeat: each call expires the previous live request and
        returns fresh figures.
        """
        now = self.clock()
        async with self.memberships.transition(member_id):
            record = await self.memberships.load_for_transition(member_id, now)
            self._ensure_changeable(record, "plan_change")

            new_plan = await self.memberships.catalog.get_offered_plan(new_plan_id)
            quote = calculate_proration(record, record.plan, new_plan, now)

            await self._supersede_live_requests(member_id, now)
            request = self._build_request(member_id, record, quote, now)
            self.db.add(request)
            await self.db.flush()

        logger.info(
            f"Plan change calculated: member={member_id} {quote.current_plan_id}->{quote.new_plan_id} "
            f"balance={quote.current_plan_balance} difference={quote.balance_difference}"
        )
        return request

    def _build_request(
        self,
        member_id: uuid.UUID,
        record: MembershipRecord,
        quote: ProrationResult,
        now: datetime,
    ) -> PlanChangeRequest:
        return PlanChangeRequest(
            id=uuid.uuid4(),
            member_id=member_id,
            from_plan_id=quote.current_plan_id,
            to_plan_id=quote.new_plan_id,
            membership_version=record.version,
            days_remaining=quote.days_remaining,
            days_total=quote.days_total,
            current_plan_balance=quote.current_plan_balance,
            new_plan_price=quote.new_plan_price,
            balance_difference=quote.balance_difference,
            payment_required=quote.payment_required,
            status=PlanChangeStatus.CALCULATED,
            created_at=now,
            expires_at=now + self.ttl,
        )

    # ===========================================
    # INITIATE
    # ===========================================

    async def initiate(self, member_id: uuid.UUID, request_id: uuid.UUID) -> Dict[str, Any]:
        """
        Confirm a calculated request.

        Returns whether payment is required and where the member goes next.
        """
        now = self.clock()
        expired = None
        async with self.memberships.transition(member_id):
            request = await self._get_request(member_id, request_id)

            if request.status == PlanChangeStatus.EXPIRED:
                expired = request
            elif request.status != PlanChangeStatus.CALCULATED:
                raise InvalidStateException(
                    f"Plan change request is already {request.status.value}",
                    current_status=request.status.value,
                    operation="initiate",
                )
            elif request.is_past_ttl(now):
                self._expire(request, now)
                expired = request
            else:
                request.status = PlanChangeStatus.CONFIRMED
                request.confirmed_at = now

        if expired is not None:
            raise RequestExpiredException(request_id, expired.expires_at)

        logger.info(
            f"Plan change confirmed: member={member_id} request={request_id} "
            f"payment_required={request.payment_required}"
        )
        return {
            "request": request,
            "payment_required": request.payment_required,
            "amount_due": max(0, request.balance_difference),
            "checkout_url": (
                self.payment_verifier.checkout_url(str(request.id))
                if request.payment_required and self.payment_verifier
                else None
            ),
            "confirm_method": "payment" if request.payment_required else "password",
        }

    # ===========================================
    # APPLY
    # ===========================================

    async def _verify_proof(
        self,
        member_id: uuid.UUID,
        request: PlanChangeRequest,
        password: Optional[str],
        payment_reference: Optional[str],
    ) -> None:
        """
        Check the member's proof of intent.

        Free changes take the account password; paid changes take a payment
        receipt covering the difference.
        """
        if request.payment_required:
            if not payment_reference:
                raise ValidationException(
                    "A payment reference is required for this plan change",
                    field="payment_reference",
                )
            if self.payment_verifier is None:
                raise ReauthenticationFailedException("Payment could not be verified", method="payment")

            receipt = await self.payment_verifier.verify_receipt(payment_reference)
            if not receipt.covers(request.balance_difference, settings.currency, str(request.id)):
                logger.warning(
                    f"Payment receipt rejected: member={member_id} request={request.id} "
                    f"reference={payment_reference} status={receipt.status.value} "
                    f"amount={receipt.amount_minor_units} due={request.balance_difference}"
                )
                raise ReauthenticationFailedException("Payment could not be verified", method="payment")
            return

        if not password:
            raise ValidationException("Your password is required to confirm this change", field="password")
        member = await self.memberships.get_member(member_id)
        if not verify_password(password, member.hashed_password):
            logger.warning(f"Re-authentication failed for member {member_id} on request {request.id}")
            raise ReauthenticationFailedException("Incorrect password", method="password")

    def _ledger_entries(self, request: PlanChangeRequest, payment_reference: Optional[str]):
        reference = str(request.id)
        entries = [
            (
                BalanceTransactionType.PRORATION_CREDIT,
                request.current_plan_balance,
                reference,
                f"Unused value of plan {request.from_plan_id} ({request.days_remaining} days)",
            ),
            (
                BalanceTransactionType.PLAN_CHARGE,
                -request.new_plan_price,
                reference,
                f"Plan {request.to_plan_id}",
            ),
        ]
        if request.payment_required:
            entries.append((
                BalanceTransactionType.PAYMENT,
                request.balance_difference,
                payment_reference,
                "Plan change payment",
            ))
        if request.forfeited_credit > 0:
            entries.append((
                BalanceTransactionType.CREDIT_FORFEITED,
                -request.forfeited_credit,
                reference,
                "Credit above the new plan price is not refunded",
            ))
        return entries

    async def apply(
        self,
        member_id: uuid.UUID,
        request_id: uuid.UUID,
        password: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> MembershipRecord:
        """
        Apply a confirmed request: verify proof, then swap to the new plan.

        Raises:
            RequestExpiredException: past TTL; the request is stored as expired
            ReauthenticationFailedException: bad password, or a receipt that
                is short or already spent; the request stays confirmed
            ConcurrentModificationException: the membership moved since the
                quote, or another transition won the race
            InvalidStateException: request is not confirmed
        """
        # Proof is checked before the write transaction; it may call out to
        # the payment service.
        request = await self._get_request(member_id, request_id)
        self._check_applicable(request)
        if request.is_past_ttl(self.clock()):
            await self._expire_request(member_id, request_id)
        await self._verify_proof(member_id, request, password, payment_reference)

        now = self.clock()
        expired = False
        async with self.memberships.transition(member_id):
            request = await self._get_request(member_id, request_id)
            self._check_applicable(request)
            if request.is_past_ttl(now):
                self._expire(request, now)
                expired = True
            else:
                record = await self._apply_locked(member_id, request, payment_reference, now)

        if expired:
            raise RequestExpiredException(request_id, request.expires_at)
        return record

    async def _expire_request(self, member_id: uuid.UUID, request_id: uuid.UUID) -> None:
        """Store a live request as expired, then raise RequestExpiredException."""
        now = self.clock()
        async with self.memberships.transition(member_id):
            request = await self._get_request(member_id, request_id)
            if request.is_live:
                self._expire(request, now)
        raise RequestExpiredException(request_id, request.expires_at)

    def _check_applicable(self, request: PlanChangeRequest) -> None:
        if request.status == PlanChangeStatus.EXPIRED:
            raise RequestExpiredException(request.id, request.expires_at)
        if request.status != PlanChangeStatus.CONFIRMED:
            raise InvalidStateException(
                f"Plan change request is {request.status.value}, expected confirmed",
                current_status=request.status.value,
                operation="apply",
            )

    async def _ensure_receipt_unused(
        self,
        member_id: uuid.UUID,
        request: PlanChangeRequest,
        payment_reference: Optional[str],
    ) -> None:
        """A receipt pays for one plan change only."""
        result = await self.db.execute(
            select(PlanChangeRequest.id)
            .where(PlanChangeRequest.payment_reference == payment_reference)
            .where(PlanChangeRequest.status == PlanChangeStatus.APPLIED)
            .limit(1)
        )
        used_by = result.scalar_one_or_none()
        if used_by is not None:
            logger.warning(
                f"Payment receipt reused: member={member_id} request={request.id} "
                f"reference={payment_reference} already applied to request {used_by}"
            )
            raise ReauthenticationFailedException("Payment reference has already been used", method="payment")

    async def _apply_locked(
        self,
        member_id: uuid.UUID,
        request: PlanChangeRequest,
        payment_reference: Optional[str],
        now: datetime,
    ) -> MembershipRecord:
        # Compare against the quoted version before settling an elapsed pause;
        # the quote already counts the pause extension.
        record = await self.memberships.require_current_record(member_id)
        self._ensure_changeable(record, "plan_change")

        if record.version != request.membership_version or record.plan_id != request.from_plan_id:
            logger.warning(
                f"Plan change request {request.id} is stale: quoted against v{request.membership_version}, "
                f"membership is at v{record.version}"
            )
            raise ConcurrentModificationException(member_id, expected_version=request.membership_version)

        if request.payment_required:
            await self._ensure_receipt_unused(member_id, request, payment_reference)
        record = await self.memberships.settle_elapsed_pause(record, now)

        new_plan = await self.memberships.catalog.get_plan(request.to_plan_id)
        successor = record.successor(
            MembershipEventType.PLAN_CHANGE,
            plan=new_plan,
            start_date=now,
            end_date=add_days(now, new_plan.duration_days),
            status=MembershipStatus.ACTIVE,
        )
        successor = await self.memberships.swap(
            record,
            successor,
            MembershipEventType.PLAN_CHANGE,
            now,
            details={
                "request_id": str(request.id),
                "from_plan_id": request.from_plan_id,
                "to_plan_id": request.to_plan_id,
                "current_plan_balance": request.current_plan_balance,
                "balance_difference": request.balance_difference,
                "payment_reference": payment_reference,
            },
        )
        await self.memberships.balance.post_entries(
            member_id, self._ledger_entries(request, payment_reference), now
        )

        request.status = PlanChangeStatus.APPLIED
        request.applied_at = now
        request.payment_reference = payment_reference
        await self.db.flush()
        return successor
