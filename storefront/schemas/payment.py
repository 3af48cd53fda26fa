"""Pydantic schemas for the signature-verified payment endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class VerifyPaymentRequest(BaseModel):
    """Fields the Razorpay checkout widget posts back after a successful payment."""

    razorpay_order_id: str = Field(min_length=1, max_length=255)
    razorpay_payment_id: str = Field(min_length=1, max_length=255)
    razorpay_signature: str = Field(min_length=1, max_length=255)


class PaymentOut(BaseModel):
    id: int
    order_id: int
    payment_method: str
    amount: Decimal
    currency: str
    status: str
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    verified_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WebhookResult(BaseModel):
    event_type: str
    handled: bool
