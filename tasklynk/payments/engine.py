"""Payment reconciliation engine.

Drives a payment from ``pending`` to exactly one terminal state:

1. ``initiate_payment`` stores the pending record and submits the charge
2. gateway polls, webhooks and admin confirmations all funnel into one
   compare-and-set from ``pending``; the first signal wins and later ones are
   ignored
3. a confirmation writes the payment and the order's ``payment_confirmed``
   flag in one transaction, and only the winning caller emits
   ``payment.confirmed``
4. payments with no outcome after the timeout fail with reason TIMEOUT and
   leave the order untouched
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional

from tasklynk.errors import (
    AmountMismatchError,
    ForbiddenError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    PaymentConflictError,
)
from tasklynk.events import EventType, LoggingNotifier, Notifier, emit_safely
from tasklynk.orders.models import Actor, Order, OrderStatus
from tasklynk.orders.storage import OrderStorage
from tasklynk.payments.gateway import GatewayClient, format_phone_number
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

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_POLL_INTERVAL_SECONDS = 2.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PaymentReconciliationEngine:
    """Initiates payments and reconciles gateway outcomes against orders."""

    def __init__(
        self,
        orders: OrderStorage,
        payments: PaymentStorage,
        system_actor_id: int,
        gateway: Optional[GatewayClient] = None,
        notifier: Optional[Notifier] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ):
        if system_actor_id is None:
            raise ValueError("system_actor_id is required")
        self.orders = orders
        self.payments = payments
        self.system_actor_id = system_actor_id
        self.gateway = gateway
        self.notifier = notifier or LoggingNotifier()
        self.timeout = timedelta(seconds=timeout_seconds)
        self.poll_interval_seconds = poll_interval_seconds
        self._clock = clock

    # =========================================================================
    # Reads
    # =========================================================================

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.payments.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(
                f"Payment not found: {payment_id}", details={"payment_id": payment_id}
            )
        return payment

    def get_payment_status(self, payment_id: int, now: Optional[datetime] = None) -> Payment:
        """Read a payment, expiring it first if it has outlived the timeout."""
        payment = self.get_payment(payment_id)
        if not payment.is_terminal and self._is_stale(payment, now or self._clock()):
            return self.expire_payment(payment_id)
        return payment

    def list_payments(self, order_id: int) -> List[Payment]:
        """Every payment attempt for an order, oldest first."""
        self._get_order(order_id)
        return self.payments.list_payments(order_id=order_id)

    def _get_order(self, order_id: int) -> Order:
        order = self.orders.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}", details={"order_id": order_id})
        return order

    def _is_stale(self, payment: Payment, now: datetime) -> bool:
        # Manual payments wait for an administrator, not the gateway timeout
        if payment.requires_admin_confirmation or payment.created_at is None:
            return False
        return now - payment.created_at > self.timeout

    # =========================================================================
    # Initiation
    # =========================================================================

    async def initiate_payment(
        self,
        order_id: int,
        payer_id: int,
        amount: Decimal,
        method: PaymentMethod,
        payer_reference: Optional[str] = None,
        payee_id: Optional[int] = None,
    ) -> Payment:
        """Create a pending payment and submit the charge to the gateway.

        Direct (manual) payments skip the gateway and wait for an
        administrator to confirm them.

        Raises:
            NotFoundError: order does not exist
            ForbiddenError: payer is not the order's client
            InvalidStateError: order cancelled, already paid, or a payment is
                already in flight
            AmountMismatchError: amount differs from the order amount
            GatewayError: charge submission failed; ``error.payment`` is the
                payment, now failed with reason GATEWAY_ERROR
        """
        method = PaymentMethod(method)
        now = self._clock()
        order = self._get_order(order_id)

        if payer_id != order.client_id:
            raise ForbiddenError("Only the order's client can pay for it")
        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidStateError(
                "Cannot pay for a cancelled order", details={"current_state": order.status}
            )
        if order.payment_confirmed:
            raise InvalidStateError(
                "Order is already paid", details={"current_state": order.status}
            )

        amount = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if amount != order.amount:
            raise AmountMismatchError(amount, order.amount)

        if method != PaymentMethod.DIRECT:
            if not payer_reference:
                raise ValueError(f"payer_reference is required for {method.value} payments")
            if method == PaymentMethod.MOBILE_MONEY:
                payer_reference = format_phone_number(payer_reference)
            if self.gateway is None:
                raise GatewayError(f"No payment gateway configured for {method.value}")

        self._ensure_no_payment_in_flight(order_id, now)

        payment = Payment(
            order_id=order_id,
            payer_id=payer_id,
            payee_id=payee_id if payee_id is not None else order.assigned_freelancer_id,
            amount=amount,
            method=method.value,
            payer_reference=payer_reference,
            created_at=now,
            updated_at=now,
        )
        payment.id = self.payments.save_payment(payment)
        logger.info(
            f"Payment initiated | id={payment.id} | order={order_id} | "
            f"method={method.value} | amount={amount}"
        )
        emit_safely(self.notifier, EventType.PAYMENT_INITIATED, payment.to_dict())

        if method == PaymentMethod.DIRECT:
            return payment

        try:
            charge = await self.gateway.initiate_charge(
                method,
                payer_reference,
                amount,
                {
                    "order_id": order_id,
                    "payment_id": payment.id,
                    "account_reference": order.display_id or str(order_id),
                    "description": "Order payment",
                },
            )
        except GatewayError as e:
            failed = self._try_fail(payment, FailureReason.GATEWAY_ERROR, str(e), self._clock())
            raise GatewayError(
                f"Could not submit charge: {e.message}",
                payment=failed or self.get_payment(payment.id),
                status_code=e.status_code,
            ) from e
        except Exception as e:
            logger.exception(f"Charge submission crashed | payment={payment.id}")
            detail = f"{type(e).__name__}: {e}"
            failed = self._try_fail(payment, FailureReason.GATEWAY_ERROR, detail, self._clock())
            raise GatewayError(
                f"Could not submit charge: {detail}",
                payment=failed or self.get_payment(payment.id),
            ) from e

        submitted = replace(
            payment,
            provider_reference=charge.provider_reference,
            checkout_url=charge.checkout_url,
            updated_at=self._clock(),
        )
        if not self.payments.update_payment(submitted, expected_status=PaymentStatus.PENDING.value):
            # Resolved (or expired) while the charge was in flight
            return self.get_payment(payment.id)
        logger.info(
            f"Charge submitted | payment={payment.id} | reference={charge.provider_reference}"
        )
        return submitted

    def _ensure_no_payment_in_flight(self, order_id: int, now: datetime) -> None:
        for pending in self.payments.list_payments(
            order_id=order_id, status=PaymentStatus.PENDING.value
        ):
            if pending.requires_admin_confirmation:
                continue
            if self._is_stale(pending, now):
                self.expire_payment(pending.id)
                continue
            raise InvalidStateError(
                "A payment for this order is already in progress",
                details={"payment_id": pending.id},
            )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def confirm(
        self,
        payment_id: int,
        outcome: PaymentOutcome,
        receipt_id: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> Payment:
        """Apply a gateway outcome (poll or webhook) to a payment.

        Idempotent: a payment that is already terminal is returned unchanged
        and no event fires. A pending outcome is a no-op. The one exception is
        a provider success for a payment that already failed with a retry-safe
        reason: the payment stays failed, the receipt is recorded on it and
        ``payment.late_success`` fires once so the charge can be reconciled.

        Raises:
            InvalidStateError: a gateway success for a direct payment, which
                only an administrator can confirm
            PaymentConflictError: the compare-and-set lost a race twice
        """
        outcome = PaymentOutcome(outcome)

        def attempt(payment: Payment, now: datetime) -> Optional[Payment]:
            if outcome == PaymentOutcome.PENDING:
                return payment
            if outcome == PaymentOutcome.FAILED:
                return self._try_fail(payment, FailureReason.DECLINED, detail, now)
            if payment.requires_admin_confirmation:
                raise InvalidStateError(
                    "Direct payments must be confirmed by an administrator",
                    details={"payment_id": payment.id},
                )
            return self._try_confirm(payment, receipt_id, now, by_admin=False)

        result = self._reconcile(payment_id, attempt, f"confirm:{outcome.value}")
        if (
            outcome == PaymentOutcome.CONFIRMED
            and result.retry_safe
            and not result.provider_confirmed
        ):
            return self._record_late_success(result, receipt_id, detail)
        return result

    def _record_late_success(
        self, payment: Payment, receipt_id: Optional[str], detail: Optional[str]
    ) -> Payment:
        now = self._clock()
        late = replace(
            payment,
            provider_confirmed=True,
            receipt_id=receipt_id or payment.receipt_id,
            updated_at=now,
        )
        if not self.payments.update_payment(late, expected_status=payment.status):
            return self.get_payment(payment.id)

        logger.warning(
            f"Provider success after payment failed | id={payment.id} | "
            f"order={payment.order_id} | reason={payment.failure_reason} | "
            f"receipt={late.receipt_id} | detail={detail}"
        )
        emit_safely(self.notifier, EventType.PAYMENT_LATE_SUCCESS, late.to_dict())
        return late

    def handle_webhook(self, payload: WebhookPayload) -> Optional[Payment]:
        """Apply a verified provider callback. Unknown references are ignored."""
        payment = self.payments.get_payment_by_provider_reference(payload.provider_reference)
        if payment is None:
            logger.warning(f"Webhook for unknown payment | reference={payload.provider_reference}")
            return None
        logger.info(
            f"Webhook received | payment={payment.id} | outcome={payload.outcome.value}"
        )
        return self.confirm(payment.id, payload.outcome, payload.receipt_id, payload.detail)

    def admin_confirm(self, payment_id: int, admin: Actor, receipt_id: str) -> Payment:
        """Record an administrator's confirmation of a payment.

        The receipt reference the administrator checked against the provider
        statement is the provider signal for manual channels.

        Raises:
            ForbiddenError: actor is not an administrator
            InvalidStateError: payment already failed
        """
        if not admin.is_admin:
            raise ForbiddenError("Only administrators can confirm payments")
        if not receipt_id or not receipt_id.strip():
            raise ValueError("receipt_id is required for manual confirmation")
        receipt_id = receipt_id.strip()

        existing = self.get_payment(payment_id)
        if existing.status == PaymentStatus.FAILED.value:
            raise InvalidStateError(
                f"Payment {payment_id} already failed ({existing.failure_reason})",
                details={"current_state": existing.status},
            )

        def attempt(payment: Payment, now: datetime) -> Optional[Payment]:
            return self._try_confirm(payment, receipt_id, now, by_admin=True)

        result = self._reconcile(payment_id, attempt, "admin_confirm")
        logger.info(f"Payment confirmed by admin | id={payment_id} | admin={admin.id}")
        return result

    def expire_payment(self, payment_id: int) -> Payment:
        """Fail a pending payment with reason TIMEOUT. The order is not touched."""

        def attempt(payment: Payment, now: datetime) -> Optional[Payment]:
            return self._try_fail(
                payment, FailureReason.TIMEOUT, "No confirmation before timeout", now
            )

        return self._reconcile(payment_id, attempt, "expire")

    def expire_stale_payments(self, now: Optional[datetime] = None) -> List[Payment]:
        """Server-side sweep: time out every pending payment older than the timeout."""
        now = now or self._clock()
        expired = []
        for payment in self.payments.list_payments(
            status=PaymentStatus.PENDING.value, limit=10000
        ):
            if not self._is_stale(payment, now):
                continue
            result = self.expire_payment(payment.id)
            if result.failure_reason == FailureReason.TIMEOUT.value:
                expired.append(result)
        if expired:
            logger.info(
                f"Expired stale payments | count={len(expired)} | actor={self.system_actor_id}"
            )
        return expired

    def _reconcile(
        self,
        payment_id: int,
        attempt: Callable[[Payment, datetime], Optional[Payment]],
        action: str,
    ) -> Payment:
        """Run a compare-and-set attempt, retrying once on an unexplained loss."""
        for round_number in range(2):
            payment = self.get_payment(payment_id)
            if payment.is_terminal:
                logger.debug(
                    f"Ignoring signal for settled payment | id={payment_id} | "
                    f"status={payment.status} | action={action}"
                )
                return payment
            result = attempt(payment, self._clock())
            if result is not None:
                return result
            logger.warning(
                f"Payment compare-and-set lost | id={payment_id} | action={action} | "
                f"round={round_number + 1}"
            )

        logger.error(f"Payment reconciliation race unresolved | id={payment_id} | action={action}")
        raise PaymentConflictError(
            f"Payment {payment_id} changed concurrently during {action}",
            details={"payment_id": payment_id},
        )

    def _try_confirm(
        self,
        payment: Payment,
        receipt_id: Optional[str],
        now: datetime,
        by_admin: bool,
    ) -> Optional[Payment]:
        confirmed = replace(
            payment,
            status=PaymentStatus.CONFIRMED.value,
            provider_confirmed=True,
            # Automated channels are approved on provider success
            confirmed_by_admin=True,
            receipt_id=receipt_id or payment.receipt_id,
            confirmed_at=now,
            updated_at=now,
        )
        result = self.payments.commit_confirmation(
            confirmed, expected_status=PaymentStatus.PENDING.value
        )

        if result == ConfirmResult.CONFIRMED:
            logger.info(
                f"Payment confirmed | id={payment.id} | order={payment.order_id} | "
                f"receipt={confirmed.receipt_id} | by_admin={by_admin}"
            )
            emit_safely(self.notifier, EventType.PAYMENT_CONFIRMED, confirmed.to_dict())
            return confirmed

        if result == ConfirmResult.ORDER_ALREADY_PAID:
            duplicate = replace(
                payment,
                status=PaymentStatus.FAILED.value,
                provider_confirmed=True,
                receipt_id=receipt_id or payment.receipt_id,
                failure_reason=FailureReason.DUPLICATE.value,
                failure_detail="Order already has a confirmed payment",
                failed_at=now,
                updated_at=now,
            )
            if not self.payments.update_payment(
                duplicate, expected_status=PaymentStatus.PENDING.value
            ):
                return None
            logger.warning(
                f"Duplicate payment for paid order | id={payment.id} | order={payment.order_id} | "
                f"receipt={duplicate.receipt_id}"
            )
            emit_safely(self.notifier, EventType.PAYMENT_DUPLICATE, duplicate.to_dict())
            return duplicate

        return None

    def _try_fail(
        self,
        payment: Payment,
        reason: FailureReason,
        detail: Optional[str],
        now: datetime,
    ) -> Optional[Payment]:
        failed = replace(
            payment,
            status=PaymentStatus.FAILED.value,
            failure_reason=reason.value,
            failure_detail=detail,
            failed_at=now,
            updated_at=now,
        )
        if not self.payments.update_payment(failed, expected_status=PaymentStatus.PENDING.value):
            return None

        logger.info(
            f"Payment failed | id={payment.id} | order={payment.order_id} | "
            f"reason={reason.value} | detail={detail}"
        )
        payload = failed.to_dict()
        if reason == FailureReason.TIMEOUT:
            payload["actor_id"] = self.system_actor_id
        emit_safely(self.notifier, EventType.PAYMENT_FAILED, payload)
        return failed

    # =========================================================================
    # Confirmation polling
    # =========================================================================

    def watch(self, payment_id: int) -> ConfirmationPoller:
        """Start polling the gateway for a payment's outcome.

        Must be called from a running event loop. The returned poller can be
        cancelled; cancelling stops local polling only.
        """
        payment = self.get_payment(payment_id)
        if payment.requires_admin_confirmation:
            raise InvalidStateError(
                "Direct payments are confirmed by an administrator, not polled",
                details={"payment_id": payment_id},
            )
        if self.gateway is None:
            raise GatewayError("No payment gateway configured")

        poller = ConfirmationPoller(
            self,
            payment_id,
            timeout_seconds=self.timeout.total_seconds(),
            interval_seconds=self.poll_interval_seconds,
        )
        return poller.start()

    async def await_confirmation(self, payment_id: int) -> Optional[Payment]:
        """Poll until the payment settles or times out."""
        poller = self.watch(payment_id)
        return await poller.wait()

    async def refresh_status(self, payment_id: int) -> Payment:
        """Ask the gateway once for the payment's outcome and apply it.

        Payments that are terminal, manual, or not yet submitted are returned
        as they are.

        Raises:
            GatewayError: the status check failed
        """
        payment = self.get_payment_status(payment_id)
        if payment.is_terminal or not payment.provider_reference:
            return payment
        if self.gateway is None:
            raise GatewayError("No payment gateway configured")

        status = await self.gateway.fetch_status(payment.provider_reference, payment.method)
        if status.outcome == PaymentOutcome.PENDING:
            return self.get_payment(payment_id)
        return self.confirm(payment_id, status.outcome, status.receipt_id, status.detail)
