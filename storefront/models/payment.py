"""
Storefront Backend — Payment SQLAlchemy Model
===============================================

What:  ORM model for the `payments` table.
Why:   Checkout callbacks and Razorpay webhooks change a payment's status only
       after their HMAC signatures verify; this table is where that lands.
How:   Rows are created by the checkout flow (outside this service) and
       located by `razorpay_order_id` when a signed callback arrives.

Status flow:
    pending ──authorized──▶ processing ──captured──▶ completed
        └──────────────────────failed──────────────▶ failed
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import TIMESTAMP, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base
from storefront.models.user import utcnow


PAYMENT_STATUSES = ("pending", "processing", "completed", "failed", "cancelled", "refunded")


class Payment(Base):
    """A Razorpay or cash-on-delivery payment attached to an order."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # No FK: orders are owned by the catalogue/checkout service
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)

    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="razorpay or cod"
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="INR", server_default=text("'INR'")
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )

    razorpay_order_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    razorpay_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    razorpay_signature: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    razorpay_payment_data: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Raw payment entity JSON from the last webhook"
    )

    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    captured_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    authorized_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_payments_order_id", "order_id"),
        Index("idx_payments_status", "status"),
        Index("idx_payments_razorpay_order_id", "razorpay_order_id"),
        Index("idx_payments_order_status", "order_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, order_id={self.order_id}, "
            f"status='{self.status}', method='{self.payment_method}')>"
        )
