"""
Storefront Backend — HMAC Signature Service
=============================================

What:  Verifies Razorpay checkout callbacks and webhook deliveries.
Why:   Both arrive from the outside world and flip a payment's status; only
       a valid HMAC proves they came from the provider.
How:   HMAC-SHA256 in lowercase hex, compared with hmac.compare_digest so the
       comparison time does not leak how many leading characters matched.

Signed messages:
    checkout callback   "<razorpay_order_id>|<razorpay_payment_id>" keyed with key_secret
    webhook             raw request body bytes, keyed with webhook_secret

Both checks fail closed: an empty signature or an unconfigured secret is a
mismatch, never a skip.
"""

import hashlib
import hmac
import logging
from typing import Optional, Union

from storefront.config import settings

logger = logging.getLogger(__name__)


def compute_signature(message: Union[str, bytes], secret: str) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class SignatureService:
    def verify(self, message: Union[str, bytes], signature: Optional[str], secret: str) -> bool:
        if not secret or not signature:
            return False
        expected = compute_signature(message, secret)
        return hmac.compare_digest(expected, signature.strip().lower())

    def verify_payment_signature(
        self, order_id: str, payment_id: str, signature: Optional[str]
    ) -> bool:
        if not settings.razorpay_key_secret:
            logger.error("RAZORPAY_KEY_SECRET is not configured; rejecting payment signature")
            return False
        valid = self.verify(f"{order_id}|{payment_id}", signature, settings.razorpay_key_secret)
        if not valid:
            logger.warning("Payment signature mismatch for order %s", order_id)
        return valid

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        if not settings.razorpay_webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET is not configured; rejecting webhook")
            return False
        valid = self.verify(raw_body, signature, settings.razorpay_webhook_secret)
        if not valid:
            logger.warning("Webhook signature mismatch (%d byte body)", len(raw_body))
        return valid


signature_service = SignatureService()
