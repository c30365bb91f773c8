"""Payment storage protocol.

``commit_confirmation`` is the one cross-record write in the system: the
payment row and the order's ``payment_confirmed`` flag change together or
not at all.
"""

from enum import Enum
from typing import List, Optional, Protocol

from tasklynk.payments.models import Payment


class ConfirmResult(str, Enum):
    """Outcome of an atomic payment confirmation."""

    CONFIRMED = "confirmed"
    STALE = "stale"  # stored payment status no longer matches
    ORDER_ALREADY_PAID = "order_already_paid"  # another payment confirmed first


class PaymentStorage(Protocol):
    """Protocol for payment persistence backends."""

    def save_payment(self, payment: Payment) -> int:
        """Insert a new payment. Returns the assigned payment ID."""
        ...

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get a payment by ID. Returns a copy the caller may modify."""
        ...

    def get_payment_by_provider_reference(self, provider_reference: str) -> Optional[Payment]:
        """Find a payment by gateway reference (checkout request ID, etc.)."""
        ...

    def list_payments(
        self,
        order_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Payment]:
        """List payments with optional filters, oldest first."""
        ...

    def update_payment(self, payment: Payment, expected_status: str) -> bool:
        """Write a payment iff its stored status still equals expected_status."""
        ...

    def commit_confirmation(self, payment: Payment, expected_status: str) -> ConfirmResult:
        """Atomically write a confirmed payment and flag its order as paid.

        Nothing is written unless the stored payment status equals
        expected_status and the order has no confirmed payment yet.
        """
        ...
