"""Payment routes for TaskLynk.

Clients initiate payments and poll their status; administrators confirm
manual transfers; gateways report outcomes through the webhook endpoints.
Every path into a payment outcome goes through the reconciliation engine, so
a payment settles exactly once however many signals arrive.
"""

from decimal import Decimal

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from tasklynk.orders import Actor
from tasklynk.payments import Payment, PaymentMethod, PaymentStatus
from tasklynk.payments.webhook import (
    MPESA_SECRET_HEADER,
    PAYSTACK_SIGNATURE_HEADER,
    parse_mpesa_callback,
    parse_paystack_event,
    verify_paystack_signature,
    verify_shared_secret,
)

from ..auth import AdminActor, CurrentActor
from ..config import get_settings
from ..database import Market, cancel_poller, track_poller
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("tasklynk.api.payments")
router = APIRouter(prefix="/payments", tags=["payments"])


# =============================================================================
# Request Models
# =============================================================================


class PaymentCreate(BaseModel):
    """Request to pay for an order. The amount must equal the order amount."""

    order_id: int
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    payer_reference: str | None = Field(
        None, max_length=64, description="Phone number (mobile money) or email (card)"
    )


class AdminConfirmRequest(BaseModel):
    """Receipt reference an administrator checked against the provider statement."""

    receipt_id: str = Field(..., min_length=1, max_length=64)


# =============================================================================
# Helper Functions
# =============================================================================


def get_visible_payment(market, payment_id: int, actor: Actor) -> Payment:
    payment = market.payments.get_payment_status(payment_id)
    if not actor.is_admin and payment.payer_id != actor.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return payment


# =============================================================================
# Webhooks
# =============================================================================


@router.post("/webhooks/mpesa")
@limiter.limit("300/minute")
async def mpesa_callback(request: Request, market: Market):
    """
    Daraja STK push callback.

    Authenticated by the shared secret header configured on the callback URL.
    Unknown references are acknowledged and ignored.
    """
    verify_shared_secret(
        request.headers.get(MPESA_SECRET_HEADER), market.settings.mpesa_webhook_secret
    )
    try:
        payload = parse_mpesa_callback(await request.json())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    payment = market.payments.handle_webhook(payload)
    logger.info(
        f"POST /payments/webhooks/mpesa | reference={payload.provider_reference} | "
        f"payment={payment.id if payment else None}"
    )
    return {"ResultCode": 0, "ResultDesc": "Accepted"}


@router.post("/webhooks/paystack")
@limiter.limit("300/minute")
async def paystack_webhook(request: Request, market: Market):
    """Paystack event webhook, signed with HMAC-SHA512 of the raw body."""
    body = await request.body()
    verify_paystack_signature(
        body, request.headers.get(PAYSTACK_SIGNATURE_HEADER), market.settings.paystack_secret_key
    )
    try:
        payload = parse_paystack_event(await request.json())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if payload is None:
        return {"status": "ignored"}
    payment = market.payments.handle_webhook(payload)
    logger.info(
        f"POST /payments/webhooks/paystack | reference={payload.provider_reference} | "
        f"payment={payment.id if payment else None}"
    )
    return {"status": "ok"}


# =============================================================================
# Routes
# =============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def initiate_payment(request: Request, body: PaymentCreate, actor: CurrentActor, market: Market):
    """
    Initiate a payment for an order.

    Mobile money sends an STK push to the payer's phone; card payments return
    a checkout URL. The gateway is then polled in the background until the
    payment settles or times out. Direct payments wait for an administrator.
    """
    logger.info(
        f"POST /payments | payer={actor.id} | order={body.order_id} | method={body.method.value}"
    )
    try:
        payment = await market.payments.initiate_payment(
            body.order_id,
            payer_id=actor.id,
            amount=body.amount,
            method=body.method,
            payer_reference=body.payer_reference,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if (
        get_settings().auto_poll_payments
        and not payment.is_terminal
        and not payment.requires_admin_confirmation
    ):
        track_poller(payment.id, market.payments.watch(payment.id))
    return payment.to_dict()


@router.get("")
@limiter.limit("60/minute")
async def list_payments(
    request: Request,
    actor: CurrentActor,
    market: Market,
    order_id: int = Query(...),
):
    """Payments for an order, oldest first. Visible to the order's client and admins."""
    order = market.orders.get_order(order_id)
    if not actor.is_admin and order.client_id != actor.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    payments = market.payments.list_payments(order_id)
    return {"payments": [p.to_dict() for p in payments]}


@router.post("/expire-stale")
@limiter.limit("10/minute")
async def expire_stale_payments(request: Request, admin: AdminActor, market: Market):
    """Time out every pending payment older than the payment timeout."""
    expired = market.payments.expire_stale_payments()
    logger.info(f"POST /payments/expire-stale | admin={admin.id} | expired={len(expired)}")
    return {"expired": [p.id for p in expired]}


@router.get("/{payment_id}")
@limiter.limit("120/minute")
async def get_payment(request: Request, payment_id: int, actor: CurrentActor, market: Market):
    """
    Current payment status.

    A pending payment older than the timeout is failed with reason TIMEOUT on
    read, so clients polling this endpoint always reach a terminal state.
    """
    return get_visible_payment(market, payment_id, actor).to_dict()


@router.post("/{payment_id}/refresh")
@limiter.limit("30/minute")
async def refresh_payment(request: Request, payment_id: int, actor: CurrentActor, market: Market):
    """Ask the gateway for the payment's outcome now instead of waiting for the poller."""
    get_visible_payment(market, payment_id, actor)
    return (await market.payments.refresh_status(payment_id)).to_dict()


@router.post("/{payment_id}/confirm")
@limiter.limit("30/minute")
async def admin_confirm_payment(
    request: Request,
    payment_id: int,
    body: AdminConfirmRequest,
    admin: AdminActor,
    market: Market,
):
    """Confirm a payment by hand, typically a direct bank or till transfer."""
    logger.info(f"POST /payments/{payment_id}/confirm | admin={admin.id}")
    try:
        payment = market.payments.admin_confirm(payment_id, admin, body.receipt_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    cancel_poller(payment_id)
    return payment.to_dict()


@router.post("/{payment_id}/cancel-polling")
@limiter.limit("30/minute")
async def cancel_payment_polling(
    request: Request, payment_id: int, actor: CurrentActor, market: Market
):
    """
    Stop background polling for a payment.

    The charge itself is not cancelled: a late webhook still settles the
    payment, and a pending payment still times out.
    """
    payment = get_visible_payment(market, payment_id, actor)
    cancelled = cancel_poller(payment_id)
    return {
        "payment_id": payment_id,
        "cancelled": cancelled,
        "status": payment.status,
        "pending": payment.status == PaymentStatus.PENDING.value,
    }
