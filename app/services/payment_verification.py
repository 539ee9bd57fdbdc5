"""
Gym Membership Service - Payment Receipt Verification

Payment itself happens outside this service: the member is sent to the
configured checkout with the plan change request id as reference, and comes
back with a payment reference. Before a paid plan change is applied we look
that reference up with the payment service and check it covers the quoted
difference.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.utils.error_handling import PaymentServiceException

logger = logging.getLogger(__name__)


class ReceiptStatus(str, Enum):
    """Receipt status as reported by the payment service."""
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
    REFUNDED = "refunded"
    UNKNOWN = "unknown"


@dataclass
class PaymentReceipt:
    """A payment as seen by the payment service."""
    reference: str
    status: ReceiptStatus
    amount_minor_units: int
    currency: str
    request_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == ReceiptStatus.SUCCESS

    def covers(self, amount_minor_units: int, currency: str, request_reference: str) -> bool:
        """
        True when this receipt pays at least amount_minor_units for the given
        plan change request.

        A receipt tagged with a different request id never matches.
        """
        if not self.success:
            return False
        if self.currency.upper() != currency.upper():
            return False
        if self.request_reference and self.request_reference != request_reference:
            return False
        return self.amount_minor_units >= amount_minor_units


# =============================================================================
# ABSTRACT VERIFIER
# =============================================================================

class PaymentVerifier(ABC):
    """Looks up payment receipts."""

    @abstractmethod
    async def verify_receipt(self, reference: str) -> PaymentReceipt:
        """
        Fetch the receipt for a payment reference.

        Raises:
            PaymentServiceException: the payment service could not be reached
        """

    def checkout_url(self, request_reference: str) -> Optional[str]:
        """Where to send the member to pay for a plan change, if anywhere."""
        return None


# =============================================================================
# HTTP GATEWAY VERIFIER
# =============================================================================

class GatewayPaymentVerifier(PaymentVerifier):
    """
    Verifies receipts against the payment service's REST API.

    GET {verify_url}/{reference} is expected to return JSON:
        {"reference": ..., "status": "success", "amount_minor_units": 2000,
         "currency": "USD", "paid_at": "...", "metadata": {"request_id": ...}}
    """

    STATUS_MAP = {
        "success": ReceiptStatus.SUCCESS,
        "succeeded": ReceiptStatus.SUCCESS,
        "paid": ReceiptStatus.SUCCESS,
        "pending": ReceiptStatus.PENDING,
        "processing": ReceiptStatus.PENDING,
        "failed": ReceiptStatus.FAILED,
        "abandoned": ReceiptStatus.FAILED,
        "refunded": ReceiptStatus.REFUNDED,
        "reversed": ReceiptStatus.REFUNDED,
    }

    def __init__(
        self,
        verify_url: Optional[str] = None,
        checkout_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.verify_url = (verify_url if verify_url is not None else settings.payment_verify_url).rstrip("/")
        self.base_checkout_url = checkout_url if checkout_url is not None else settings.payment_checkout_url
        self.api_key = api_key if api_key is not None else settings.payment_api_key
        self.timeout_seconds = timeout_seconds or settings.payment_timeout_seconds

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def checkout_url(self, request_reference: str) -> Optional[str]:
        if not self.base_checkout_url:
            return None
        separator = "&" if "?" in self.base_checkout_url else "?"
        return f"{self.base_checkout_url}{separator}reference={request_reference}"

    async def verify_receipt(self, reference: str) -> PaymentReceipt:
        if not self.verify_url:
            logger.error("Payment verification requested but PAYMENT_VERIFY_URL is not set")
            raise PaymentServiceException("Payment verification is not configured")

        url = f"{self.verify_url}/{reference}"
        logger.info(f"Verifying payment receipt: {reference}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url, headers=self._get_headers())
        except httpx.TimeoutException as e:
            logger.error(f"Payment service timeout verifying {reference}")
            raise PaymentServiceException("Payment service timed out. Please try again.", original_error=e)
        except httpx.RequestError as e:
            logger.error(f"Payment service request error: {e}")
            raise PaymentServiceException(original_error=e)

        if response.status_code == 404:
            return PaymentReceipt(
                reference=reference,
                status=ReceiptStatus.UNKNOWN,
                amount_minor_units=0,
                currency=settings.currency,
                message="Payment reference not found",
            )
        if response.status_code >= 400:
            logger.error(f"Payment service error {response.status_code} verifying {reference}")
            raise PaymentServiceException(f"Payment service returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise PaymentServiceException("Payment service returned an unreadable response", original_error=e)

        return self._parse_receipt(reference, data)

    def _parse_receipt(self, reference: str, data: Dict[str, Any]) -> PaymentReceipt:
        status_value = str(data.get("status", "")).lower()
        metadata = data.get("metadata") or {}

        paid_at = None
        if data.get("paid_at"):
            try:
                paid_at = datetime.fromisoformat(data["paid_at"].replace("Z", "+00:00")).replace(tzinfo=None)
            except (ValueError, TypeError, AttributeError):
                logger.warning(f"Unparseable paid_at on receipt {reference}: {data.get('paid_at')!r}")

        try:
            amount = int(data.get("amount_minor_units", 0))
        except (ValueError, TypeError):
            amount = 0

        return PaymentReceipt(
            reference=data.get("reference") or reference,
            status=self.STATUS_MAP.get(status_value, ReceiptStatus.UNKNOWN),
            amount_minor_units=amount,
            currency=data.get("currency") or settings.currency,
            request_reference=metadata.get("request_id"),
            paid_at=paid_at,
            message=data.get("message"),
        )


def get_payment_verifier() -> PaymentVerifier:
    """FastAPI dependency for the configured receipt verifier."""
    return GatewayPaymentVerifier()
