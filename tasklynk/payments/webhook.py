"""Inbound gateway webhooks: authenticity checks and payload parsing.

A webhook that fails validation raises WebhookSignatureError before any state
is touched. Parsed callbacks are normalised to ``WebhookPayload``.
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

from tasklynk.errors import WebhookSignatureError
from tasklynk.payments.models import PaymentOutcome, WebhookPayload

logger = logging.getLogger(__name__)

MPESA_SECRET_HEADER = "x-webhook-secret"
PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"


def verify_shared_secret(provided: Optional[str], expected: Optional[str]) -> None:
    """Constant-time comparison of a shared-secret header (M-Pesa callbacks)."""
    if not expected:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Rejected webhook: shared secret mismatch")
        raise WebhookSignatureError("Invalid webhook secret")


def verify_paystack_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> None:
    """Check ``x-paystack-signature``: hex HMAC-SHA512 of the raw body."""
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    expected = hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()
    if not signature or not hmac.compare_digest(signature.lower(), expected):
        logger.warning("Rejected webhook: Paystack signature mismatch")
        raise WebhookSignatureError("Invalid webhook signature")


def _metadata_value(items: Any, name: str) -> Optional[str]:
    if not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, dict) and item.get("Name") == name and item.get("Value") is not None:
            return str(item["Value"])
    return None


def parse_mpesa_callback(data: Dict[str, Any]) -> WebhookPayload:
    """Parse a Daraja STK callback (``Body.stkCallback``).

    Raises:
        ValueError: payload is not an STK callback
    """
    callback = (data.get("Body") or {}).get("stkCallback") if isinstance(data, dict) else None
    if not isinstance(callback, dict) or not callback.get("CheckoutRequestID"):
        raise ValueError("Invalid M-Pesa callback payload")
    if "ResultCode" not in callback:
        raise ValueError("M-Pesa callback missing ResultCode")

    result_code = str(callback["ResultCode"])
    items = (callback.get("CallbackMetadata") or {}).get("Item")
    if result_code == "0":
        return WebhookPayload(
            provider_reference=callback["CheckoutRequestID"],
            outcome=PaymentOutcome.CONFIRMED,
            receipt_id=_metadata_value(items, "MpesaReceiptNumber"),
            detail=callback.get("ResultDesc"),
        )
    return WebhookPayload(
        provider_reference=callback["CheckoutRequestID"],
        outcome=PaymentOutcome.FAILED,
        detail=f"{result_code}: {callback.get('ResultDesc') or 'payment failed'}",
    )


PAYSTACK_EVENTS = {
    "charge.success": PaymentOutcome.CONFIRMED,
    "charge.failed": PaymentOutcome.FAILED,
}


def parse_paystack_event(data: Dict[str, Any]) -> Optional[WebhookPayload]:
    """Parse a Paystack webhook. Returns None for events that carry no outcome."""
    if not isinstance(data, dict):
        raise ValueError("Invalid Paystack event payload")
    outcome = PAYSTACK_EVENTS.get(str(data.get("event")))
    if outcome is None:
        return None
    payload = data.get("data") or {}
    reference = payload.get("reference")
    if not reference:
        raise ValueError("Paystack event missing reference")
    receipt = payload.get("receipt_number") or payload.get("id")
    return WebhookPayload(
        provider_reference=str(reference),
        outcome=outcome,
        receipt_id=str(receipt) if receipt is not None and outcome == PaymentOutcome.CONFIRMED else None,
        detail=payload.get("gateway_response"),
    )
