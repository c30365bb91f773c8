"""Orders subsystem for TaskLynk.

Models:
- Order: A work order placed by a client
- OrderStatus / OrderEvent: Lifecycle states and the events that move them
- Artifact / ArtifactType: Uploaded deliverable metadata
- OrderStateTransition: Audit log entry for state changes
- Actor / ActorRole: The principal requesting an operation

Service:
- OrderService: Order operations (create, edit, transition, record artifacts)
"""

from tasklynk.orders.gate import unmet_requirements
from tasklynk.orders.models import (
    ORDER_TRANSITIONS,
    TERMINAL_STATUSES,
    VALID_ORDER_TRANSITIONS,
    Actor,
    ActorRole,
    Artifact,
    ArtifactType,
    Order,
    OrderEvent,
    OrderStateTransition,
    OrderStatus,
    can_transition,
    target_status,
)
from tasklynk.orders.service import OrderChanges, OrderService
from tasklynk.orders.storage import OrderStorage

__all__ = [
    # Models
    "Order",
    "OrderStatus",
    "OrderEvent",
    "Artifact",
    "ArtifactType",
    "OrderStateTransition",
    "Actor",
    "ActorRole",
    "ORDER_TRANSITIONS",
    "VALID_ORDER_TRANSITIONS",
    "TERMINAL_STATUSES",
    "can_transition",
    "target_status",
    "unmet_requirements",
    # Service
    "OrderService",
    "OrderChanges",
    "OrderStorage",
]
