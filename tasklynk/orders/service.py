"""Order service: the order lifecycle state machine.

Every status change is validated against the transition table and the
event's guard, then written with a conditional update keyed on the status
that was read. A transition either commits in full or raises and leaves the
order untouched.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from tasklynk.errors import (
    ErrorCode,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransitionError,
)
from tasklynk.events import EventType, LoggingNotifier, Notifier, emit_safely
from tasklynk.orders.gate import unmet_requirements
from tasklynk.orders.models import (
    Actor,
    ActorRole,
    Artifact,
    ArtifactType,
    Order,
    OrderEvent,
    OrderStateTransition,
    OrderStatus,
    target_status,
)
from tasklynk.orders.storage import OrderStorage
from tasklynk.pricing.calculator import (
    compute_freelancer_deadline,
    compute_minimum_amount,
    validate_amount,
)
from tasklynk.pricing.catalog import get_catalog_entry

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255
MAX_INSTRUCTIONS_LENGTH = 20000

_ADMIN_EVENTS = {
    OrderEvent.ADMIN_APPROVE,
    OrderEvent.ADMIN_REJECT,
    OrderEvent.ADMIN_DELIVER,
    OrderEvent.MARK_PAID,
}
_FREELANCER_EVENTS = {OrderEvent.START_WORK, OrderEvent.SUBMIT}
_PAYMENT_GATED_EVENTS = {OrderEvent.CLIENT_APPROVE, OrderEvent.MARK_PAID}

# Deliverable types the owning client may upload (reference material)
_CLIENT_ARTIFACT_TYPES = {ArtifactType.ADDITIONAL.value}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OrderChanges:
    """Client edits to a pending order. None means unchanged."""

    title: Optional[str] = None
    instructions: Optional[str] = None
    catalog_key: Optional[str] = None
    quantity: Optional[int] = None
    deadline: Optional[datetime] = None
    amount: Optional[Decimal] = None
    requires_reports: Optional[bool] = None


def _clean_text(value: str, field_name: str, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    value = value.strip()
    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")
    return value


def _require_aware(deadline: datetime) -> datetime:
    if deadline.tzinfo is None:
        raise ValueError("deadline must be timezone-aware")
    return deadline


class OrderService:
    """Order operations: create, edit, transition, record deliverables."""

    def __init__(
        self,
        storage: OrderStorage,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.storage = storage
        self.notifier = notifier or LoggingNotifier()
        self._clock = clock

    # =========================================================================
    # Reads
    # =========================================================================

    def get_order(self, order_id: int) -> Order:
        order = self.storage.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}", details={"order_id": order_id})
        return order

    def list_orders(self, **filters) -> List[Order]:
        return self.storage.list_orders(**filters)

    def get_transitions(self, order_id: int) -> List[OrderStateTransition]:
        self.get_order(order_id)
        return self.storage.get_transitions(order_id)

    def submission_status(self, order_id: int) -> List[str]:
        """Unmet submission requirements for an order (empty when ready)."""
        order = self.get_order(order_id)
        return unmet_requirements(order, self.storage.list_artifacts(order_id))

    # =========================================================================
    # Create / edit
    # =========================================================================

    def create_order(
        self,
        client: Actor,
        title: str,
        instructions: str,
        catalog_key: str,
        quantity: int,
        deadline: datetime,
        custom_amount: Optional[Decimal] = None,
        requires_reports: bool = True,
        now: Optional[datetime] = None,
    ) -> Order:
        """Place a new order in ``pending``.

        The amount defaults to the catalog minimum. A custom amount must be at
        least the minimum and is then frozen against later recomputation.

        Raises:
            ForbiddenError: actor is not a client
            UnknownServiceError: unknown catalog key
            AmountBelowMinimumError: custom amount below the minimum
            ValueError: empty text, bad quantity, or deadline not in the future
        """
        if client.role != ActorRole.CLIENT:
            raise ForbiddenError("Only clients can place orders")

        now = now or self._clock()
        title = _clean_text(title, "title", MAX_TITLE_LENGTH)
        instructions = _clean_text(instructions, "instructions", MAX_INSTRUCTIONS_LENGTH)
        _require_aware(deadline)
        if deadline <= now:
            raise ValueError("deadline must be in the future")

        entry = get_catalog_entry(catalog_key)
        minimum = compute_minimum_amount(catalog_key, quantity, deadline, now)
        if custom_amount is not None:
            amount = validate_amount(custom_amount, minimum)
        else:
            amount = minimum

        order = Order(
            client_id=client.id,
            title=title,
            instructions=instructions,
            catalog_key=entry.key,
            work_type=entry.name,
            amount=amount,
            deadline=deadline,
            freelancer_deadline=compute_freelancer_deadline(deadline, now),
            custom_amount=custom_amount is not None,
            requires_reports=requires_reports,
            display_id=self._next_display_id(now),
            created_at=now,
            updated_at=now,
        )
        setattr(order, entry.quantity_field, quantity)

        order.id = self.storage.save_order(order)
        self._record_transition(order, None, OrderStatus.PENDING.value, "create", client.id, now)

        logger.info(
            f"Order created | id={order.id} | display_id={order.display_id} | "
            f"client={client.id} | service={entry.key} | amount={amount}"
        )
        emit_safely(self.notifier, EventType.ORDER_CREATED, order.to_dict())
        return order

    def edit_order(
        self,
        order_id: int,
        actor: Actor,
        changes: OrderChanges,
        now: Optional[datetime] = None,
    ) -> Order:
        """Apply client edits to a pending order.

        Switching to a service with a different unit type clears the old
        quantity field; a new quantity must then be supplied. Non-custom
        amounts are recomputed. Custom amounts are kept as they are but must
        still clear the new minimum.

        Raises:
            ForbiddenError: actor is not the owning client
            InvalidStateError: order is no longer pending
            TransitionError(CONFLICT): the order changed concurrently
        """
        now = now or self._clock()
        order = self.get_order(order_id)
        if actor.role != ActorRole.CLIENT or actor.id != order.client_id:
            raise ForbiddenError("Only the owning client can edit an order")
        if order.status != OrderStatus.PENDING.value:
            raise InvalidStateError(
                f"Order can only be edited while pending (status: {order.status})",
                details={"current_state": order.status},
            )

        old_entry = get_catalog_entry(order.catalog_key)
        entry = get_catalog_entry(changes.catalog_key or order.catalog_key)

        quantity = changes.quantity
        if quantity is None:
            if entry.quantity_field != old_entry.quantity_field:
                raise ValueError(f"quantity is required when switching to {entry.key}")
            quantity = order.quantity

        deadline = order.deadline
        if changes.deadline is not None:
            deadline = _require_aware(changes.deadline)
            if deadline <= now:
                raise ValueError("deadline must be in the future")

        minimum = compute_minimum_amount(entry.key, quantity, deadline, now)
        custom = order.custom_amount
        if changes.amount is not None:
            amount = validate_amount(changes.amount, minimum)
            custom = True
        elif order.custom_amount:
            amount = validate_amount(order.amount, minimum)
        else:
            amount = minimum

        updated = replace(
            order,
            title=(
                _clean_text(changes.title, "title", MAX_TITLE_LENGTH)
                if changes.title is not None
                else order.title
            ),
            instructions=(
                _clean_text(changes.instructions, "instructions", MAX_INSTRUCTIONS_LENGTH)
                if changes.instructions is not None
                else order.instructions
            ),
            catalog_key=entry.key,
            work_type=entry.name,
            pages=None,
            slides=None,
            units=None,
            amount=amount,
            custom_amount=custom,
            deadline=deadline,
            freelancer_deadline=(
                compute_freelancer_deadline(deadline, now)
                if changes.deadline is not None
                else order.freelancer_deadline
            ),
            requires_reports=(
                changes.requires_reports
                if changes.requires_reports is not None
                else order.requires_reports
            ),
            updated_at=now,
        )
        setattr(updated, entry.quantity_field, quantity)

        if not self.storage.update_order(updated, expected_status=order.status):
            raise self._conflict(order, "edit")

        logger.info(
            f"Order edited | id={order.id} | service={entry.key} | "
            f"{entry.quantity_field}={quantity} | amount={amount}"
        )
        emit_safely(self.notifier, EventType.ORDER_EDITED, updated.to_dict())
        return updated

    # =========================================================================
    # Transitions
    # =========================================================================

    def request_transition(
        self,
        order_id: int,
        event: OrderEvent,
        actor: Actor,
        freelancer_id: Optional[int] = None,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Apply a lifecycle event to an order.

        Returns the updated order.

        Raises:
            NotFoundError: order does not exist
            TransitionError: the event is not legal from the current status
                (INVALID_STATE), the actor may not perform it (FORBIDDEN),
                deliverables are missing (SUBMISSION_INCOMPLETE), the order is
                unpaid (PAYMENT_REQUIRED), or the order moved on concurrently
                (CONFLICT)
        """
        event = OrderEvent(event)
        now = now or self._clock()
        order = self.get_order(order_id)

        target = target_status(order.status, event)
        if target is None:
            raise TransitionError(
                f"Cannot {event.value} an order in status '{order.status}'",
                code=ErrorCode.INVALID_STATE,
                current_state=order.status,
                attempted_event=event.value,
            )

        self._check_guard(order, event, actor, freelancer_id)
        updated = self._apply(order, event, target, actor, freelancer_id, now)

        if not self.storage.update_order(updated, expected_status=order.status):
            raise self._conflict(order, event.value)

        self._record_transition(order, order.status, target.value, event.value, actor.id, now, note)
        logger.info(
            f"Order transitioned | id={order.id} | {order.status} -> {target.value} | "
            f"event={event.value} | actor={actor.id}"
        )
        emit_safely(
            self.notifier,
            EventType.ORDER_TRANSITIONED,
            {
                "order_id": order.id,
                "display_id": order.display_id,
                "from_status": order.status,
                "to_status": target.value,
                "event": event.value,
                "actor_id": actor.id,
            },
        )
        return updated

    def _check_guard(
        self,
        order: Order,
        event: OrderEvent,
        actor: Actor,
        freelancer_id: Optional[int],
    ) -> None:
        def refuse(message: str, code: ErrorCode, unmet: Optional[List[str]] = None):
            logger.info(
                f"Transition refused | id={order.id} | event={event.value} | "
                f"code={code.value} | actor={actor.id}"
            )
            return TransitionError(
                message,
                code=code,
                current_state=order.status,
                attempted_event=event.value,
                unmet_requirements=unmet,
            )

        is_owner = actor.role == ActorRole.CLIENT and actor.id == order.client_id
        is_assignee = (
            actor.role == ActorRole.FREELANCER and actor.id == order.assigned_freelancer_id
        )

        if event in _ADMIN_EVENTS and not actor.is_admin:
            raise refuse("Only administrators can perform this action", ErrorCode.FORBIDDEN)

        if event == OrderEvent.ASSIGN:
            if not (actor.is_admin or is_owner):
                raise refuse("Only an administrator or the client can assign", ErrorCode.FORBIDDEN)
            if freelancer_id is None:
                raise ValueError("freelancer_id is required to assign an order")
            if order.assigned_freelancer_id not in (None, freelancer_id):
                raise refuse(
                    f"Order already assigned to freelancer {order.assigned_freelancer_id}",
                    ErrorCode.INVALID_STATE,
                )

        if event in _FREELANCER_EVENTS and not is_assignee:
            raise refuse("Only the assigned freelancer can do this", ErrorCode.FORBIDDEN)

        if event == OrderEvent.SUBMIT:
            missing = unmet_requirements(order, self.storage.list_artifacts(order.id))
            if missing:
                raise refuse(
                    f"Submission incomplete: missing {', '.join(missing)}",
                    ErrorCode.SUBMISSION_INCOMPLETE,
                    missing,
                )

        if event in (OrderEvent.CLIENT_APPROVE, OrderEvent.REQUEST_REVISION) and not is_owner:
            raise refuse("Only the client who placed the order can do this", ErrorCode.FORBIDDEN)

        if event in _PAYMENT_GATED_EVENTS and not order.payment_confirmed:
            raise refuse("Payment has not been confirmed", ErrorCode.PAYMENT_REQUIRED)

        if event == OrderEvent.CANCEL:
            client_may_cancel = is_owner and order.status == OrderStatus.PENDING.value
            if not (actor.is_admin or client_may_cancel):
                raise refuse("Not allowed to cancel this order", ErrorCode.FORBIDDEN)

    def _apply(
        self,
        order: Order,
        event: OrderEvent,
        target: OrderStatus,
        actor: Actor,
        freelancer_id: Optional[int],
        now: datetime,
    ) -> Order:
        changes = {"status": target.value, "updated_at": now}
        if event == OrderEvent.ADMIN_APPROVE:
            changes.update(admin_approved=True, approved_at=now)
        elif event == OrderEvent.ASSIGN:
            changes.update(assigned_freelancer_id=freelancer_id, assigned_at=now)
        elif event == OrderEvent.SUBMIT:
            changes["submitted_at"] = now
        elif event == OrderEvent.ADMIN_DELIVER:
            changes["delivered_at"] = now
        elif event == OrderEvent.CLIENT_APPROVE:
            changes.update(client_approved=True, completed_at=now)
        elif event == OrderEvent.MARK_PAID:
            changes["completed_at"] = now
        elif event == OrderEvent.CANCEL:
            changes["cancelled_at"] = now
        return replace(order, **changes)

    def _conflict(self, order: Order, attempted: str) -> TransitionError:
        current = self.storage.get_order(order.id)
        current_state = current.status if current else order.status
        logger.warning(
            f"Order update lost race | id={order.id} | expected={order.status} | "
            f"actual={current_state} | attempted={attempted}"
        )
        return TransitionError(
            "Order was modified concurrently; reload and retry",
            code=ErrorCode.CONFLICT,
            current_state=current_state,
            attempted_event=attempted,
        )

    # =========================================================================
    # Artifacts
    # =========================================================================

    def record_artifact(
        self,
        order_id: int,
        uploader: Actor,
        artifact_type: ArtifactType,
        file_name: str,
        file_url: str,
        now: Optional[datetime] = None,
    ) -> Artifact:
        """Record metadata for an uploaded deliverable.

        Each upload of a type gets the next version number for that type.
        """
        artifact_type = ArtifactType(artifact_type)
        now = now or self._clock()
        order = self.get_order(order_id)

        if order.is_terminal:
            raise InvalidStateError(
                f"Cannot upload files to an order in status '{order.status}'",
                details={"current_state": order.status},
            )

        is_assignee = (
            uploader.role == ActorRole.FREELANCER and uploader.id == order.assigned_freelancer_id
        )
        is_owner = uploader.role == ActorRole.CLIENT and uploader.id == order.client_id
        client_upload = is_owner and artifact_type.value in _CLIENT_ARTIFACT_TYPES
        if not (uploader.is_admin or is_assignee or client_upload):
            raise ForbiddenError("Not allowed to upload files to this order")

        existing = [
            a for a in self.storage.list_artifacts(order_id) if a.artifact_type == artifact_type.value
        ]
        artifact = Artifact(
            order_id=order_id,
            uploaded_by=uploader.id,
            artifact_type=artifact_type.value,
            file_name=_clean_text(file_name, "file_name", 255),
            file_url=_clean_text(file_url, "file_url", 2048),
            version=max((a.version for a in existing), default=0) + 1,
            created_at=now,
        )
        artifact.id = self.storage.save_artifact(artifact)

        logger.info(
            f"Artifact recorded | order={order_id} | type={artifact.artifact_type} | "
            f"version={artifact.version} | by={uploader.id}"
        )
        emit_safely(self.notifier, EventType.ARTIFACT_RECORDED, artifact.to_dict())
        return artifact

    # =========================================================================
    # Helpers
    # =========================================================================

    def _next_display_id(self, now: datetime) -> str:
        """Next ``#YY######`` display ID for the current year."""
        year = now.strftime("%y")
        sequence = self.storage.max_display_sequence(year) + 1
        return f"#{year}{sequence:06d}"

    def _record_transition(
        self,
        order: Order,
        from_status: Optional[str],
        to_status: str,
        event: str,
        actor_id: int,
        now: datetime,
        note: Optional[str] = None,
    ) -> None:
        self.storage.save_transition(
            OrderStateTransition(
                order_id=order.id,
                from_status=from_status,
                to_status=to_status,
                event=event,
                actor_id=actor_id,
                note=note,
                created_at=now,
            )
        )
