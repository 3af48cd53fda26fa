"""
Storefront Backend — Payment Service
======================================

What:  Applies signature-verified Razorpay callbacks to `payments` rows.
Why:   A payment's status is money-relevant state; it may only move when the
       request proves it came from Razorpay (webhook) or from a checkout
       Razorpay completed (payment signature).
How:   SignatureService checks the HMAC first. Nothing is read or written
       before that check passes.

Webhook event mapping:
    payment.captured    ─▶ completed   (captured_at)
    payment.failed      ─▶ failed      (failure_reason, failed_at)
    payment.authorized  ─▶ processing  (authorized_at)
    anything else       ─▶ logged, acknowledged, no change
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.exceptions import (
    DatabaseError,
    NotFoundError,
    SignatureVerificationError,
    ValidationError,
)
from storefront.models.payment import Payment
from storefront.schemas.payment import PaymentOut, WebhookResult
from storefront.services.signature_service import signature_service

logger = logging.getLogger(__name__)


class PaymentService:

    async def verify_payment(
        self, db: AsyncSession, order_id: str, payment_id: str, signature: str
    ) -> PaymentOut:
        """
        Confirm a checkout the Razorpay widget reported as successful.

        Args:
            order_id:   razorpay_order_id the checkout was created with
            payment_id: razorpay_payment_id returned by the widget
            signature:  HMAC-SHA256 of "order_id|payment_id"

        Raises:
            SignatureVerificationError: signature mismatch
            NotFoundError:              no payment row for the Razorpay order
        """
        if not signature_service.verify_payment_signature(order_id, payment_id, signature):
            raise SignatureVerificationError(
                "Invalid payment signature", context={"razorpay_order_id": order_id}
            )

        try:
            payment = await self._get_by_razorpay_order(db, order_id)
            if payment is None:
                raise NotFoundError(resource="payment", resource_id=order_id)

            now = datetime.now(timezone.utc)
            payment.status = "completed"
            payment.razorpay_payment_id = payment_id
            payment.razorpay_signature = signature
            payment.verified_at = now
            payment.updated_at = now
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error verifying payment: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "verify_payment"})

        logger.info("Payment %s verified for order %s", payment_id, payment.order_id)
        return PaymentOut.model_validate(payment)

    async def process_webhook(
        self, db: AsyncSession, raw_body: bytes, signature: Optional[str]
    ) -> WebhookResult:
        """
        Handle a Razorpay webhook delivery.

        The signature covers the exact raw bytes, so the body is parsed only
        after it verifies.

        Raises:
            SignatureVerificationError: signature missing or wrong
            ValidationError:            body is not JSON or lacks the payment entity
        """
        if not signature_service.verify_webhook_signature(raw_body, signature):
            raise SignatureVerificationError("Invalid webhook signature")

        try:
            event = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            raise ValidationError("Invalid webhook payload")
        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload")

        event_type = str(event.get("event") or "")
        payload = event.get("payload")
        payment_part = payload.get("payment") if isinstance(payload, dict) else None
        entity = payment_part.get("entity") if isinstance(payment_part, dict) else None
        if not isinstance(entity, dict):
            raise ValidationError("Invalid webhook payload", field="payload.payment.entity")

        handler = {
            "payment.captured": self._on_captured,
            "payment.failed": self._on_failed,
            "payment.authorized": self._on_authorized,
        }.get(event_type)

        if handler is None:
            logger.info("Unhandled webhook event: %s", event_type or "<none>")
            return WebhookResult(event_type=event_type, handled=False)

        try:
            payment = await self._get_by_razorpay_order(db, entity.get("order_id"))
            if payment is None:
                # Orders created outside this store still get webhooks; acknowledge them.
                logger.warning(
                    "Webhook %s for unknown Razorpay order %s", event_type, entity.get("order_id")
                )
                return WebhookResult(event_type=event_type, handled=False)

            handler(payment, entity)
            payment.razorpay_payment_data = json.dumps(entity)
            payment.updated_at = datetime.now(timezone.utc)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error processing webhook: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "process_webhook"})

        logger.info("Webhook %s applied to payment %s", event_type, payment.id)
        return WebhookResult(event_type=event_type, handled=True)

    # ── Event handlers ────────────────────────────────────────────────────

    @staticmethod
    def _on_captured(payment: Payment, entity: Dict[str, Any]) -> None:
        payment.status = "completed"
        payment.razorpay_payment_id = entity.get("id") or payment.razorpay_payment_id
        payment.captured_at = datetime.now(timezone.utc)

    @staticmethod
    def _on_failed(payment: Payment, entity: Dict[str, Any]) -> None:
        payment.status = "failed"
        payment.failure_reason = entity.get("error_description") or "Payment failed"
        payment.failed_at = datetime.now(timezone.utc)

    @staticmethod
    def _on_authorized(payment: Payment, entity: Dict[str, Any]) -> None:
        payment.status = "processing"
        payment.razorpay_payment_id = entity.get("id") or payment.razorpay_payment_id
        payment.authorized_at = datetime.now(timezone.utc)

    async def _get_by_razorpay_order(
        self, db: AsyncSession, razorpay_order_id: Optional[str]
    ) -> Optional[Payment]:
        if not razorpay_order_id:
            return None
        result = await db.execute(
            select(Payment).where(Payment.razorpay_order_id == razorpay_order_id)
        )
        return result.scalar_one_or_none()


payment_service = PaymentService()
