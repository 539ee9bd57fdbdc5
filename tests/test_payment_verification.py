"""
Gym Membership Service - Payment Verification Tests

Exercises GatewayPaymentVerifier against a respx-mocked payment service and
the receipt coverage rules used when applying a paid plan change.
"""

from datetime import datetime

import pytest

from app.services.payment_verification import (
    GatewayPaymentVerifier,
    PaymentReceipt,
    ReceiptStatus,
    get_payment_verifier,
)
from app.utils.error_handling import PaymentServiceException

from fixtures.payment_mock import MockPaymentService, create_mock_payments


@pytest.fixture
def payments() -> MockPaymentService:
    return create_mock_payments()


@pytest.fixture
def verifier(payments) -> GatewayPaymentVerifier:
    return GatewayPaymentVerifier(
        verify_url=MockPaymentService.VERIFY_URL,
        checkout_url=MockPaymentService.CHECKOUT_URL,
        api_key=payments.api_key,
    )


class TestGatewayVerifier:
    """Receipt lookups over HTTP."""

    @pytest.mark.asyncio
    async def test_successful_receipt_is_parsed(self, payments, verifier):
        created = payments.create_receipt(2000, request_id="req-123", reference="PAY_OK")

        with payments.activate():
            receipt = await verifier.verify_receipt(created.reference)

        assert receipt.reference == "PAY_OK"
        assert receipt.status == ReceiptStatus.SUCCESS
        assert receipt.success is True
        assert receipt.amount_minor_units == 2000
        assert receipt.currency == "USD"
        assert receipt.request_reference == "req-123"
        assert receipt.paid_at == datetime(2026, 1, 1, 12, 0)

    @pytest.mark.asyncio
    async def test_sends_api_key(self, payments, verifier):
        created = payments.create_receipt(500)

        with payments.activate():
            await verifier.verify_receipt(created.reference)

        [request] = payments.requests_seen
        assert request.headers["Authorization"] == "Bearer pk_test_xxx"
        assert request.url.path == f"/api/receipts/{created.reference}"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "gateway_status,expected",
        [
            ("pending", ReceiptStatus.PENDING),
            ("failed", ReceiptStatus.FAILED),
            ("reversed", ReceiptStatus.REFUNDED),
            ("mystery", ReceiptStatus.UNKNOWN),
        ],
    )
    async def test_status_mapping(self, payments, verifier, gateway_status, expected):
        created = payments.create_receipt(2000, status=gateway_status)

        with payments.activate():
            receipt = await verifier.verify_receipt(created.reference)

        assert receipt.status == expected
        assert receipt.paid_at is None

    @pytest.mark.asyncio
    async def test_unknown_reference(self, payments, verifier):
        with payments.activate():
            receipt = await verifier.verify_receipt("PAY_MISSING")

        assert receipt.status == ReceiptStatus.UNKNOWN
        assert receipt.amount_minor_units == 0
        assert receipt.success is False

    @pytest.mark.asyncio
    async def test_gateway_error(self, payments, verifier):
        payments.set_error(500)

        with payments.activate():
            with pytest.raises(PaymentServiceException) as exc_info:
                await verifier.verify_receipt("PAY_ANY")

        assert exc_info.value.status_code == 502
        assert "HTTP 500" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_gateway_timeout(self, payments, verifier):
        payments.set_timeout()

        with payments.activate():
            with pytest.raises(PaymentServiceException) as exc_info:
                await verifier.verify_receipt("PAY_ANY")

        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unconfigured_verifier(self):
        verifier = GatewayPaymentVerifier(verify_url="", checkout_url="")

        with pytest.raises(PaymentServiceException):
            await verifier.verify_receipt("PAY_ANY")

    def test_checkout_url(self, verifier):
        assert verifier.checkout_url("abc") == "https://payments.test/checkout?reference=abc"

    def test_checkout_url_keeps_existing_query(self):
        verifier = GatewayPaymentVerifier(verify_url="", checkout_url="https://pay.example/c?site=gym")

        assert verifier.checkout_url("abc") == "https://pay.example/c?site=gym&reference=abc"

    def test_no_checkout_configured(self):
        assert GatewayPaymentVerifier(verify_url="", checkout_url="").checkout_url("abc") is None

    def test_dependency_returns_gateway_verifier(self):
        assert isinstance(get_payment_verifier(), GatewayPaymentVerifier)


class TestReceiptCoverage:
    """Whether a receipt pays for a plan change."""

    def make_receipt(self, **overrides) -> PaymentReceipt:
        values = {
            "reference": "PAY_1",
            "status": ReceiptStatus.SUCCESS,
            "amount_minor_units": 2000,
            "currency": "USD",
            "request_reference": "req-1",
        }
        values.update(overrides)
        return PaymentReceipt(**values)

    def test_exact_amount_covers(self):
        assert self.make_receipt().covers(2000, "USD", "req-1") is True

    def test_overpayment_covers(self):
        assert self.make_receipt(amount_minor_units=2500).covers(2000, "usd", "req-1") is True

    def test_short_payment(self):
        assert self.make_receipt(amount_minor_units=1999).covers(2000, "USD", "req-1") is False

    def test_wrong_currency(self):
        assert self.make_receipt(currency="EUR").covers(2000, "USD", "req-1") is False

    def test_other_request(self):
        assert self.make_receipt(request_reference="req-2").covers(2000, "USD", "req-1") is False

    def test_untagged_receipt_covers(self):
        assert self.make_receipt(request_reference=None).covers(2000, "USD", "req-1") is True

    @pytest.mark.parametrize(
        "status",
        [ReceiptStatus.PENDING, ReceiptStatus.FAILED, ReceiptStatus.REFUNDED, ReceiptStatus.UNKNOWN],
    )
    def test_unsuccessful_never_covers(self, status):
        assert self.make_receipt(status=status).covers(0, "USD", "req-1") is False
