"""
Gym Membership Service - Services Package

Business logic services.
"""

from app.services.plan_catalog_service import PlanCatalogService
from app.services.balance_service import BalanceService
from app.services.membership_service import MembershipService, member_lock
from app.services.plan_change_service import PlanChangeService
from app.services.pause_service import SubscriptionPauseService
from app.services.cancellation_service import CancellationService
from app.services.payment_verification import (
    PaymentVerifier,
    PaymentReceipt,
    ReceiptStatus,
    GatewayPaymentVerifier,
    get_payment_verifier,
)
from app.services.proration import (
    ProrationResult,
    calculate_proration,
    value_lost,
    round_half_up,
)

__all__ = [
    "PlanCatalogService",
    "BalanceService",
    "MembershipService",
    "member_lock",
    "PlanChangeService",
    "SubscriptionPauseService",
    "CancellationService",
    "PaymentVerifier",
    "PaymentReceipt",
    "ReceiptStatus",
    "GatewayPaymentVerifier",
    "get_payment_verifier",
    "ProrationResult",
    "calculate_proration",
    "value_lost",
    "round_half_up",
]
