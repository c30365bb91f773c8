"""Order routes for TaskLynk.

Endpoints for the order lifecycle: placement, client edits, lifecycle
transitions, deliverable uploads and the submission checklist.
"""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from tasklynk.orders import (
    Actor,
    ActorRole,
    ArtifactType,
    Order,
    OrderChanges,
    OrderEvent,
    OrderStatus,
)

from ..auth import CurrentActor
from ..database import Market
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("tasklynk.api.orders")
router = APIRouter(prefix="/orders", tags=["orders"])


# =============================================================================
# Request Models
# =============================================================================


class OrderCreate(BaseModel):
    """Request to place an order."""

    title: str = Field(..., min_length=1, max_length=255)
    instructions: str = Field(..., min_length=1)
    catalog_key: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    deadline: datetime
    amount: Decimal | None = Field(None, gt=0, description="Custom amount, at least the minimum")
    requires_reports: bool = True


class OrderUpdate(BaseModel):
    """Client edits to a pending order. Omitted fields are unchanged."""

    title: str | None = Field(None, min_length=1, max_length=255)
    instructions: str | None = Field(None, min_length=1)
    catalog_key: str | None = None
    quantity: int | None = Field(None, gt=0)
    deadline: datetime | None = None
    amount: Decimal | None = Field(None, gt=0)
    requires_reports: bool | None = None


class TransitionRequest(BaseModel):
    """Request a lifecycle event."""

    event: OrderEvent
    freelancer_id: int | None = None
    note: str | None = Field(None, max_length=2000)


class ArtifactCreate(BaseModel):
    """Metadata for an uploaded file. The bytes live in object storage."""

    artifact_type: ArtifactType
    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=2048)


# =============================================================================
# Helper Functions
# =============================================================================


def can_view(order: Order, actor: Actor) -> bool:
    """Admins see everything; clients their own orders; freelancers their assignments."""
    if actor.is_admin:
        return True
    if actor.role == ActorRole.CLIENT:
        return order.client_id == actor.id
    return order.assigned_freelancer_id == actor.id


def get_visible_order(market, order_id: int, actor: Actor) -> Order:
    order = market.orders.get_order(order_id)
    if not can_view(order, actor):
        # Same answer as a missing order so IDs cannot be probed
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


def unprocessable(e: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


# =============================================================================
# Routes
# =============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_order(request: Request, body: OrderCreate, actor: CurrentActor, market: Market):
    """
    Place a new order.

    The amount defaults to the catalog minimum for the service, quantity and
    deadline. A custom amount must be at least that minimum.
    """
    logger.info(f"POST /orders | client={actor.id} | service={body.catalog_key}")
    try:
        order = market.orders.create_order(
            actor,
            title=body.title,
            instructions=body.instructions,
            catalog_key=body.catalog_key,
            quantity=body.quantity,
            deadline=body.deadline,
            custom_amount=body.amount,
            requires_reports=body.requires_reports,
        )
    except ValueError as e:
        raise unprocessable(e)
    return order.to_dict()


@router.get("")
@limiter.limit("60/minute")
async def list_orders(
    request: Request,
    actor: CurrentActor,
    market: Market,
    status_filter: OrderStatus | None = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List orders visible to the caller, newest first."""
    filters = {"limit": limit, "offset": offset}
    if status_filter is not None:
        filters["status"] = status_filter.value
    if actor.role == ActorRole.CLIENT:
        filters["client_id"] = actor.id
    elif actor.role == ActorRole.FREELANCER:
        filters["freelancer_id"] = actor.id

    orders = market.orders.list_orders(**filters)
    return {"orders": [o.to_dict() for o in orders], "limit": limit, "offset": offset}


@router.get("/{order_id}")
@limiter.limit("60/minute")
async def get_order(request: Request, order_id: int, actor: CurrentActor, market: Market):
    """Get details of a specific order."""
    return get_visible_order(market, order_id, actor).to_dict()


@router.patch("/{order_id}")
@limiter.limit("20/minute")
async def edit_order(
    request: Request, order_id: int, body: OrderUpdate, actor: CurrentActor, market: Market
):
    """
    Edit a pending order.

    Only the owning client can edit, and only before admin approval. Changing
    service, quantity or deadline recomputes the amount unless it is custom.
    """
    logger.info(f"PATCH /orders/{order_id} | actor={actor.id}")
    changes = OrderChanges(**body.model_dump(exclude_unset=True))
    try:
        order = market.orders.edit_order(order_id, actor, changes)
    except ValueError as e:
        raise unprocessable(e)
    return order.to_dict()


@router.post("/{order_id}/transitions")
@limiter.limit("30/minute")
async def request_transition(
    request: Request, order_id: int, body: TransitionRequest, actor: CurrentActor, market: Market
):
    """
    Apply a lifecycle event to an order.

    Refusals carry a code: INVALID_STATE (409), FORBIDDEN (403),
    SUBMISSION_INCOMPLETE (422, with the unmet requirements), PAYMENT_REQUIRED
    (402) or CONFLICT (409).
    """
    logger.info(f"POST /orders/{order_id}/transitions | actor={actor.id} | event={body.event.value}")
    try:
        order = market.orders.request_transition(
            order_id,
            body.event,
            actor,
            freelancer_id=body.freelancer_id,
            note=body.note,
        )
    except ValueError as e:
        raise unprocessable(e)
    return order.to_dict()


@router.get("/{order_id}/transitions")
@limiter.limit("60/minute")
async def get_transitions(request: Request, order_id: int, actor: CurrentActor, market: Market):
    """Status history for an order, oldest first."""
    get_visible_order(market, order_id, actor)
    return {"transitions": [t.to_dict() for t in market.orders.get_transitions(order_id)]}


@router.post("/{order_id}/artifacts", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def record_artifact(
    request: Request, order_id: int, body: ArtifactCreate, actor: CurrentActor, market: Market
):
    """Record an uploaded deliverable. Repeat uploads of a type get the next version."""
    logger.info(
        f"POST /orders/{order_id}/artifacts | actor={actor.id} | type={body.artifact_type.value}"
    )
    try:
        artifact = market.orders.record_artifact(
            order_id, actor, body.artifact_type, body.file_name, body.file_url
        )
    except ValueError as e:
        raise unprocessable(e)
    return artifact.to_dict()


@router.get("/{order_id}/submission")
@limiter.limit("60/minute")
async def submission_status(request: Request, order_id: int, actor: CurrentActor, market: Market):
    """Deliverables still missing before the freelancer can submit."""
    get_visible_order(market, order_id, actor)
    unmet = market.orders.submission_status(order_id)
    return {"order_id": order_id, "ready": not unmet, "unmet_requirements": unmet}
