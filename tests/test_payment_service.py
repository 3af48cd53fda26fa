"""
Storefront Backend — Payment Service Unit Tests
=================================================

What we test:
    ✅ Checkout verification: signature check before any query, status update
    ✅ Webhook: signature over raw bytes, payload validation, event mapping
    ✅ Unknown events and unknown orders are acknowledged without changes
"""

import hashlib
import hmac
import json
from decimal import Decimal

import pytest

from storefront.config import settings
from storefront.exceptions import NotFoundError, SignatureVerificationError, ValidationError
from storefront.models.payment import Payment
from storefront.services.payment_service import PaymentService


def _sign(message: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def _payment(**overrides):
    fields = {
        "id": 11,
        "order_id": 501,
        "payment_method": "razorpay",
        "amount": Decimal("1499.00"),
        "currency": "INR",
        "status": "pending",
        "razorpay_order_id": "order_Abc123",
    }
    fields.update(overrides)
    return Payment(**fields)


def _webhook(event, entity):
    body = json.dumps({"event": event, "payload": {"payment": {"entity": entity}}}).encode()
    return body, _sign(body, settings.razorpay_webhook_secret)


class TestVerifyPayment:

    def setup_method(self):
        self.service = PaymentService()

    @pytest.mark.asyncio
    async def test_valid_signature_completes_payment(self, mock_db_session, db_result):
        payment = _payment()
        mock_db_session.execute.return_value = db_result(payment)
        signature = _sign(b"order_Abc123|pay_Xyz789", settings.razorpay_key_secret)

        result = await self.service.verify_payment(
            mock_db_session, "order_Abc123", "pay_Xyz789", signature
        )

        assert result.status == "completed"
        assert payment.razorpay_payment_id == "pay_Xyz789"
        assert payment.razorpay_signature == signature
        assert payment.verified_at is not None
        mock_db_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bad_signature_rejected_before_lookup(self, mock_db_session):
        with pytest.raises(SignatureVerificationError, match="Invalid payment signature"):
            await self.service.verify_payment(mock_db_session, "order_Abc123", "pay_Xyz789", "0" * 64)
        mock_db_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_order(self, mock_db_session, db_result):
        mock_db_session.execute.return_value = db_result(None)
        signature = _sign(b"order_Missing|pay_1", settings.razorpay_key_secret)
        with pytest.raises(NotFoundError):
            await self.service.verify_payment(mock_db_session, "order_Missing", "pay_1", signature)


class TestProcessWebhook:

    def setup_method(self):
        self.service = PaymentService()

    @pytest.mark.asyncio
    async def test_captured(self, mock_db_session, db_result):
        payment = _payment()
        mock_db_session.execute.return_value = db_result(payment)
        body, signature = _webhook("payment.captured", {"id": "pay_1", "order_id": "order_Abc123"})

        result = await self.service.process_webhook(mock_db_session, body, signature)

        assert result.handled is True
        assert result.event_type == "payment.captured"
        assert payment.status == "completed"
        assert payment.razorpay_payment_id == "pay_1"
        assert payment.captured_at is not None
        assert json.loads(payment.razorpay_payment_data)["id"] == "pay_1"

    @pytest.mark.asyncio
    async def test_failed_with_reason(self, mock_db_session, db_result):
        payment = _payment()
        mock_db_session.execute.return_value = db_result(payment)
        body, signature = _webhook(
            "payment.failed",
            {"id": "pay_2", "order_id": "order_Abc123", "error_description": "Card declined"},
        )

        await self.service.process_webhook(mock_db_session, body, signature)

        assert payment.status == "failed"
        assert payment.failure_reason == "Card declined"
        assert payment.failed_at is not None

    @pytest.mark.asyncio
    async def test_failed_default_reason(self, mock_db_session, db_result):
        payment = _payment()
        mock_db_session.execute.return_value = db_result(payment)
        body, signature = _webhook("payment.failed", {"order_id": "order_Abc123"})
        await self.service.process_webhook(mock_db_session, body, signature)
        assert payment.failure_reason == "Payment failed"

    @pytest.mark.asyncio
    async def test_authorized(self, mock_db_session, db_result):
        payment = _payment()
        mock_db_session.execute.return_value = db_result(payment)
        body, signature = _webhook("payment.authorized", {"id": "pay_3", "order_id": "order_Abc123"})
        await self.service.process_webhook(mock_db_session, body, signature)
        assert payment.status == "processing"
        assert payment.authorized_at is not None

    @pytest.mark.asyncio
    async def test_unhandled_event_acknowledged(self, mock_db_session):
        body, signature = _webhook("refund.created", {"id": "rfnd_1", "order_id": "order_Abc123"})
        result = await self.service.process_webhook(mock_db_session, body, signature)
        assert result.handled is False
        mock_db_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_order_acknowledged(self, mock_db_session, db_result):
        mock_db_session.execute.return_value = db_result(None)
        body, signature = _webhook("payment.captured", {"id": "pay_1", "order_id": "order_Other"})
        result = await self.service.process_webhook(mock_db_session, body, signature)
        assert result.handled is False
        mock_db_session.flush.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_signature(self, mock_db_session):
        body, _ = _webhook("payment.captured", {"order_id": "order_Abc123"})
        with pytest.raises(SignatureVerificationError, match="Invalid webhook signature"):
            await self.service.process_webhook(mock_db_session, body, "deadbeef")

    @pytest.mark.asyncio
    async def test_missing_signature(self, mock_db_session):
        body, _ = _webhook("payment.captured", {"order_id": "order_Abc123"})
        with pytest.raises(SignatureVerificationError):
            await self.service.process_webhook(mock_db_session, body, None)

    @pytest.mark.asyncio
    async def test_invalid_json(self, mock_db_session):
        body = b"not json"
        with pytest.raises(ValidationError, match="Invalid webhook payload"):
            await self.service.process_webhook(
                mock_db_session, body, _sign(body, settings.razorpay_webhook_secret)
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "document",
        [{"event": "payment.captured"}, {"event": "payment.captured", "payload": []}, ["a"]],
    )
    async def test_missing_entity(self, document, mock_db_session):
        body = json.dumps(document).encode()
        with pytest.raises(ValidationError):
            await self.service.process_webhook(
                mock_db_session, body, _sign(body, settings.razorpay_webhook_secret)
            )
