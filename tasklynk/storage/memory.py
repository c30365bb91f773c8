"""In-memory marketplace storage for testing and local development.

Implements both ``OrderStorage`` and ``PaymentStorage`` behind one lock so
the payment confirmation dual write is atomic. Records are copied on the way
in and out; callers never hold a reference to stored state.
"""

import copy
import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from tasklynk.orders.models import Artifact, Order, OrderStateTransition
from tasklynk.payments.models import Payment
from tasklynk.payments.storage import ConfirmResult

logger = logging.getLogger(__name__)


class InMemoryMarketplaceStorage:
    """In-memory order and payment storage."""

    def __init__(self):
        """Initialize empty storage."""
        self._lock = threading.RLock()
        self._orders: Dict[int, Order] = {}
        self._artifacts: Dict[int, List[Artifact]] = {}  # order_id -> list
        self._transitions: Dict[int, List[OrderStateTransition]] = {}  # order_id -> list
        self._payments: Dict[int, Payment] = {}
        self._order_ids = itertools.count(1)
        self._artifact_ids = itertools.count(1)
        self._transition_ids = itertools.count(1)
        self._payment_ids = itertools.count(1)

    def _utc_now(self) -> datetime:
        """Get current UTC timestamp."""
        return datetime.now(timezone.utc)

    # === Orders ===

    def save_order(self, order: Order) -> int:
        """Insert a new order."""
        with self._lock:
            order_id = next(self._order_ids)
            stored = copy.deepcopy(order)
            stored.id = order_id
            self._orders[order_id] = stored
            self._artifacts.setdefault(order_id, [])
            self._transitions.setdefault(order_id, [])
            return order_id

    def get_order(self, order_id: int) -> Optional[Order]:
        """Get an order by ID."""
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    def list_orders(
        self,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        freelancer_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        """List orders with optional filters."""
        with self._lock:
            orders = list(self._orders.values())

        if status is not None:
            orders = [o for o in orders if o.status == status]
        if client_id is not None:
            orders = [o for o in orders if o.client_id == client_id]
        if freelancer_id is not None:
            orders = [o for o in orders if o.assigned_freelancer_id == freelancer_id]

        # Sort by created_at desc
        orders.sort(key=lambda o: o.created_at or self._utc_now(), reverse=True)
        return [copy.deepcopy(o) for o in orders[offset : offset + limit]]

    def update_order(self, order: Order, expected_status: str) -> bool:
        """Write an order iff its stored status still equals expected_status."""
        with self._lock:
            current = self._orders.get(order.id)
            if current is None or current.status != expected_status:
                return False
            stored = copy.deepcopy(order)
            # payment_confirmed is only ever written by commit_confirmation
            stored.payment_confirmed = current.payment_confirmed
            self._orders[order.id] = stored
            return True

    def max_display_sequence(self, year_prefix: str) -> int:
        """Highest numeric display ID suffix for the year prefix."""
        prefix = f"#{year_prefix}"
        best = 0
        with self._lock:
            for order in self._orders.values():
                display_id = order.display_id or ""
                if display_id.startswith(prefix) and display_id[len(prefix) :].isdigit():
                    best = max(best, int(display_id[len(prefix) :]))
        return best

    # === Artifacts ===

    def save_artifact(self, artifact: Artifact) -> int:
        """Insert artifact metadata."""
        with self._lock:
            artifact_id = next(self._artifact_ids)
            stored = copy.deepcopy(artifact)
            stored.id = artifact_id
            self._artifacts.setdefault(artifact.order_id, []).append(stored)
            return artifact_id

    def list_artifacts(self, order_id: int) -> List[Artifact]:
        """All artifacts for an order."""
        with self._lock:
            return [copy.deepcopy(a) for a in self._artifacts.get(order_id, [])]

    # === Transitions ===

    def save_transition(self, transition: OrderStateTransition) -> int:
        """Save a state transition record."""
        with self._lock:
            transition_id = next(self._transition_ids)
            stored = copy.deepcopy(transition)
            stored.id = transition_id
            self._transitions.setdefault(transition.order_id, []).append(stored)
            return transition_id

    def get_transitions(self, order_id: int) -> List[OrderStateTransition]:
        """Get all state transitions for an order."""
        with self._lock:
            transitions = [copy.deepcopy(t) for t in self._transitions.get(order_id, [])]
        # Sort by created_at asc; insertion order breaks ties
        return sorted(transitions, key=lambda t: t.created_at or self._utc_now())

    # === Payments ===

    def save_payment(self, payment: Payment) -> int:
        """Insert a new payment."""
        with self._lock:
            payment_id = next(self._payment_ids)
            stored = copy.deepcopy(payment)
            stored.id = payment_id
            self._payments[payment_id] = stored
            return payment_id

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get a payment by ID."""
        with self._lock:
            payment = self._payments.get(payment_id)
            return copy.deepcopy(payment) if payment else None

    def get_payment_by_provider_reference(self, provider_reference: str) -> Optional[Payment]:
        """Find a payment by gateway reference."""
        with self._lock:
            for payment in self._payments.values():
                if payment.provider_reference == provider_reference:
                    return copy.deepcopy(payment)
        return None

    def list_payments(
        self,
        order_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Payment]:
        """List payments with optional filters."""
        with self._lock:
            payments = sorted(self._payments.values(), key=lambda p: p.id)
            if order_id is not None:
                payments = [p for p in payments if p.order_id == order_id]
            if status is not None:
                payments = [p for p in payments if p.status == status]
            return [copy.deepcopy(p) for p in payments[:limit]]

    def update_payment(self, payment: Payment, expected_status: str) -> bool:
        """Write a payment iff its stored status still equals expected_status."""
        with self._lock:
            current = self._payments.get(payment.id)
            if current is None or current.status != expected_status:
                return False
            self._payments[payment.id] = copy.deepcopy(payment)
            return True

    def commit_confirmation(self, payment: Payment, expected_status: str) -> ConfirmResult:
        """Atomically confirm the payment and flag its order as paid."""
        with self._lock:
            current = self._payments.get(payment.id)
            if current is None or current.status != expected_status:
                return ConfirmResult.STALE
            order = self._orders.get(payment.order_id)
            if order is None:
                return ConfirmResult.STALE
            if order.payment_confirmed:
                return ConfirmResult.ORDER_ALREADY_PAID

            self._payments[payment.id] = copy.deepcopy(payment)
            order.payment_confirmed = True
            order.updated_at = payment.confirmed_at or self._utc_now()
            return ConfirmResult.CONFIRMED
