"""Order models and the order lifecycle transition table."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

# =============================================================================
# Enums
# =============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    EDITING = "editing"
    REVISION = "revision"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    PAID = "paid"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.PAID, OrderStatus.CANCELLED}
)


class OrderEvent(str, Enum):
    """Actions an actor may request against an order."""

    ADMIN_APPROVE = "admin_approve"
    ASSIGN = "assign"
    START_WORK = "start_work"
    SUBMIT = "submit"
    ADMIN_REJECT = "admin_reject"
    ADMIN_DELIVER = "admin_deliver"
    REQUEST_REVISION = "request_revision"
    CLIENT_APPROVE = "client_approve"
    MARK_PAID = "mark_paid"
    CANCEL = "cancel"


class ActorRole(str, Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"
    ADMIN = "admin"


class ArtifactType(str, Enum):
    """Kinds of deliverable a freelancer can upload."""

    DRAFT = "draft"
    FINAL_DOCUMENT = "final_document"
    COMPLETED_PAPER = "completed_paper"
    PLAGIARISM_REPORT = "plagiarism_report"
    AI_REPORT = "ai_report"
    REVISION = "revision"
    ADDITIONAL = "additional"
    ABSTRACT = "abstract"
    PRINTABLE_SOURCES = "printable_sources"
    GRAPHICS_TABLES = "graphics_tables"


# =============================================================================
# Transition table
# =============================================================================

_NON_TERMINAL: FrozenSet[OrderStatus] = frozenset(set(OrderStatus) - TERMINAL_STATUSES)

# event -> (allowed source statuses, target status)
ORDER_TRANSITIONS: Dict[OrderEvent, Tuple[FrozenSet[OrderStatus], OrderStatus]] = {
    OrderEvent.ADMIN_APPROVE: (frozenset({OrderStatus.PENDING}), OrderStatus.APPROVED),
    OrderEvent.ASSIGN: (frozenset({OrderStatus.APPROVED}), OrderStatus.ASSIGNED),
    OrderEvent.START_WORK: (frozenset({OrderStatus.ASSIGNED}), OrderStatus.IN_PROGRESS),
    OrderEvent.SUBMIT: (
        frozenset({OrderStatus.ASSIGNED, OrderStatus.IN_PROGRESS, OrderStatus.REVISION}),
        OrderStatus.EDITING,
    ),
    OrderEvent.ADMIN_REJECT: (frozenset({OrderStatus.EDITING}), OrderStatus.REVISION),
    OrderEvent.ADMIN_DELIVER: (frozenset({OrderStatus.EDITING}), OrderStatus.DELIVERED),
    OrderEvent.REQUEST_REVISION: (frozenset({OrderStatus.DELIVERED}), OrderStatus.REVISION),
    OrderEvent.CLIENT_APPROVE: (frozenset({OrderStatus.DELIVERED}), OrderStatus.COMPLETED),
    OrderEvent.MARK_PAID: (frozenset({OrderStatus.DELIVERED}), OrderStatus.PAID),
    OrderEvent.CANCEL: (_NON_TERMINAL, OrderStatus.CANCELLED),
}


def _build_valid_transitions() -> Dict[OrderStatus, FrozenSet[OrderStatus]]:
    edges: Dict[OrderStatus, set] = {status: set() for status in OrderStatus}
    for sources, target in ORDER_TRANSITIONS.values():
        for source in sources:
            edges[source].add(target)
    return {status: frozenset(targets) for status, targets in edges.items()}


# from -> reachable statuses, derived from ORDER_TRANSITIONS
VALID_ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = _build_valid_transitions()


def can_transition(from_status: str, to_status: str) -> bool:
    """Check if a status transition is valid."""
    return OrderStatus(to_status) in VALID_ORDER_TRANSITIONS.get(OrderStatus(from_status), ())


def target_status(current: str, event: OrderEvent) -> Optional[OrderStatus]:
    """Status an event leads to from ``current``, or None if not allowed."""
    sources, target = ORDER_TRANSITIONS[OrderEvent(event)]
    if OrderStatus(current) not in sources:
        return None
    return target


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class Actor:
    """Authenticated principal requesting an operation."""

    id: int
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Order:
    """A work order placed by a client.

    Exactly one of ``pages``, ``slides`` or ``units`` is set, according to the
    unit type of the catalog entry. ``status`` holds an ``OrderStatus`` value.
    """

    client_id: int
    title: str
    instructions: str
    catalog_key: str
    work_type: str
    amount: Decimal
    deadline: datetime
    freelancer_deadline: datetime
    id: Optional[int] = None
    display_id: Optional[str] = None
    pages: Optional[int] = None
    slides: Optional[int] = None
    units: Optional[int] = None
    custom_amount: bool = False
    requires_reports: bool = True
    status: str = OrderStatus.PENDING.value
    assigned_freelancer_id: Optional[int] = None
    admin_approved: bool = False
    client_approved: bool = False
    payment_confirmed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def quantity(self) -> int:
        for value in (self.pages, self.slides, self.units):
            if value is not None:
                return value
        return 0

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "display_id": self.display_id,
            "client_id": self.client_id,
            "title": self.title,
            "instructions": self.instructions,
            "catalog_key": self.catalog_key,
            "work_type": self.work_type,
            "pages": self.pages,
            "slides": self.slides,
            "units": self.units,
            "amount": str(self.amount),
            "custom_amount": self.custom_amount,
            "deadline": _iso(self.deadline),
            "freelancer_deadline": _iso(self.freelancer_deadline),
            "requires_reports": self.requires_reports,
            "status": self.status,
            "assigned_freelancer_id": self.assigned_freelancer_id,
            "admin_approved": self.admin_approved,
            "client_approved": self.client_approved,
            "payment_confirmed": self.payment_confirmed,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "approved_at": _iso(self.approved_at),
            "assigned_at": _iso(self.assigned_at),
            "submitted_at": _iso(self.submitted_at),
            "delivered_at": _iso(self.delivered_at),
            "completed_at": _iso(self.completed_at),
            "cancelled_at": _iso(self.cancelled_at),
        }


@dataclass
class Artifact:
    """Metadata for an uploaded deliverable. File bytes live elsewhere."""

    order_id: int
    uploaded_by: int
    artifact_type: str
    file_name: str
    file_url: str
    id: Optional[int] = None
    version: int = 1
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "uploaded_by": self.uploaded_by,
            "artifact_type": self.artifact_type,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "version": self.version,
            "created_at": _iso(self.created_at),
        }


@dataclass
class OrderStateTransition:
    """Audit log entry for an order status change."""

    order_id: int
    from_status: Optional[str]
    to_status: str
    event: str
    actor_id: int
    id: Optional[int] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "event": self.event,
            "actor_id": self.actor_id,
            "note": self.note,
            "created_at": _iso(self.created_at),
        }
