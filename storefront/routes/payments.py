"""
Storefront Backend — Payment Callback Routes
==============================================

What:  The two Razorpay callbacks whose HMAC signatures this service checks.
How:   /razorpay/verify is called by the logged-in customer's browser after
       checkout and carries the payment signature in its JSON body.
       /webhook/razorpay is called by Razorpay itself; the signature is in
       X-Razorpay-Signature and covers the raw request bytes, so the body is
       read with `await request.body()` rather than parsed by FastAPI.
"""

import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database import get_db_session
from storefront.middleware.auth import AuthenticatedUser, require_auth
from storefront.schemas.envelope import ErrorResponse, SuccessResponse, success_body
from storefront.schemas.payment import PaymentOut, VerifyPaymentRequest, WebhookResult
from storefront.services.payment_service import payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])


@router.post(
    "/razorpay/verify",
    response_model=SuccessResponse[PaymentOut],
    responses={
        400: {"description": "Signature mismatch", "model": ErrorResponse},
        404: {"description": "Unknown Razorpay order", "model": ErrorResponse},
    },
    summary="Verify a completed Razorpay checkout",
)
async def verify_razorpay_payment(
    body: VerifyPaymentRequest,
    user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    payment = await payment_service.verify_payment(
        db, body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature
    )
    logger.info("User %s verified payment for order %s", user.user_id, payment.order_id)
    return success_body(payment, "Payment verified successfully")


@router.post(
    "/webhook/razorpay",
    response_model=SuccessResponse[WebhookResult],
    responses={400: {"description": "Signature or payload invalid", "model": ErrorResponse}},
    summary="Razorpay webhook receiver",
)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db_session),
):
    raw_body = await request.body()
    result = await payment_service.process_webhook(db, raw_body, x_razorpay_signature)
    return success_body(result, "Webhook processed")
