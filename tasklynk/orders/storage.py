"""Order storage protocol.

Backends live in ``tasklynk.storage``. Every status change goes through
``update_order`` with the status the caller read: a backend must refuse the
write when the stored status has moved on.
"""

from typing import List, Optional, Protocol

from tasklynk.orders.models import Artifact, Order, OrderStateTransition


class OrderStorage(Protocol):
    """Protocol for order persistence backends."""

    # Orders
    def save_order(self, order: Order) -> int:
        """Insert a new order. Returns the assigned order ID."""
        ...

    def get_order(self, order_id: int) -> Optional[Order]:
        """Get an order by ID. Returns a copy the caller may modify."""
        ...

    def list_orders(
        self,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        freelancer_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        """List orders with optional filters, newest first."""
        ...

    def update_order(self, order: Order, expected_status: str) -> bool:
        """Write an order iff its stored status still equals expected_status.

        Returns False when the order is missing or the status moved on.
        ``payment_confirmed`` is never written here; it belongs to
        ``PaymentStorage.commit_confirmation``.
        """
        ...

    def max_display_sequence(self, year_prefix: str) -> int:
        """Highest numeric suffix among display IDs for the given year (0 if none)."""
        ...

    # Artifacts
    def save_artifact(self, artifact: Artifact) -> int:
        """Insert artifact metadata. Returns the artifact ID."""
        ...

    def list_artifacts(self, order_id: int) -> List[Artifact]:
        """All artifacts for an order, oldest first."""
        ...

    # Transitions (audit log)
    def save_transition(self, transition: OrderStateTransition) -> int:
        """Save a state transition record. Returns the transition ID."""
        ...

    def get_transitions(self, order_id: int) -> List[OrderStateTransition]:
        """Get all state transitions for an order, oldest first."""
        ...
