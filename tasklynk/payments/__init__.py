"""Payments subsystem for TaskLynk.

Models:
- Payment: A client payment against an order
- PaymentStatus / PaymentMethod / FailureReason / PaymentOutcome
- WebhookPayload: Provider callback normalised across gateways

Gateways:
- MpesaGateway: Safaricom Daraja STK push (mobile money)
- PaystackGateway: Card payments
- GatewayRouter: Per-method dispatch

Service:
- PaymentReconciliationEngine: Initiation, idempotent confirmation, timeouts
- ConfirmationPoller: Cancellable status polling with a deadline
"""

from tasklynk.payments.engine import PaymentReconciliationEngine
from tasklynk.payments.gateway import (
    ChargeRequest,
    ChargeStatus,
    GatewayClient,
    GatewayRouter,
    MpesaGateway,
    PaystackGateway,
    build_gateway_router,
    format_phone_number,
)
from tasklynk.payments.models import (
    FailureReason,
    Payment,
    PaymentMethod,
    PaymentOutcome,
    PaymentStatus,
    WebhookPayload,
)
from tasklynk.payments.poller import ConfirmationPoller
from tasklynk.payments.storage import ConfirmResult, PaymentStorage

__all__ = [
    # Models
    "Payment",
    "PaymentStatus",
    "PaymentMethod",
    "PaymentOutcome",
    "FailureReason",
    "WebhookPayload",
    # Gateways
    "GatewayClient",
    "GatewayRouter",
    "MpesaGateway",
    "PaystackGateway",
    "ChargeRequest",
    "ChargeStatus",
    "build_gateway_router",
    "format_phone_number",
    # Service
    "PaymentReconciliationEngine",
    "ConfirmationPoller",
    "PaymentStorage",
    "ConfirmResult",
]
