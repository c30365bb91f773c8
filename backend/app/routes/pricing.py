"""Pricing routes: catalog listing and price quotes."""

from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from tasklynk.pricing import (
    SERVICE_CATALOG,
    compute_freelancer_deadline,
    compute_minimum_amount,
    get_catalog_entry,
    is_urgent,
    payout_for_category,
)

from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("tasklynk.api.pricing")
router = APIRouter(prefix="/pricing", tags=["pricing"])


# =============================================================================
# Request/Response Models
# =============================================================================


class QuoteRequest(BaseModel):
    """Request a price for a catalog service."""

    catalog_key: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    deadline: datetime


class QuoteResponse(BaseModel):
    catalog_key: str
    work_type: str
    quantity: int
    unit_type: str
    minimum_amount: Decimal
    urgent: bool
    freelancer_payout: Decimal
    freelancer_deadline: datetime


class CatalogEntryResponse(BaseModel):
    key: str
    name: str
    rate: Decimal
    unit_type: str
    category: str


# =============================================================================
# Routes
# =============================================================================


@router.get("/catalog", response_model=list[CatalogEntryResponse])
@limiter.limit("60/minute")
async def list_catalog(request: Request):
    """List every service with its base rate and unit."""
    return [
        CatalogEntryResponse(
            key=e.key,
            name=e.name,
            rate=e.rate,
            unit_type=e.unit_type.value,
            category=e.category.value,
        )
        for e in sorted(SERVICE_CATALOG.values(), key=lambda e: e.key)
    ]


@router.post("/quote", response_model=QuoteResponse)
@limiter.limit("60/minute")
async def quote(request: Request, body: QuoteRequest):
    """
    Quote the minimum client price and the freelancer payout.

    Deadlines under 8 hours away carry the 30% urgency surcharge, except for
    editing services.
    """
    now = datetime.now(timezone.utc)
    if body.deadline.tzinfo is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="deadline must include a timezone",
        )
    if body.deadline <= now:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="deadline must be in the future",
        )

    entry = get_catalog_entry(body.catalog_key)
    amount = compute_minimum_amount(entry.key, body.quantity, body.deadline, now)
    pages = body.quantity if entry.quantity_field == "pages" else 0
    slides = body.quantity if entry.quantity_field == "slides" else 0

    logger.info(f"POST /pricing/quote | service={entry.key} | quantity={body.quantity} | amount={amount}")
    return QuoteResponse(
        catalog_key=entry.key,
        work_type=entry.name,
        quantity=body.quantity,
        unit_type=entry.unit_type.value,
        minimum_amount=amount,
        urgent=is_urgent(body.deadline, now) and not entry.surcharge_exempt,
        freelancer_payout=payout_for_category(entry.payout, pages, slides),
        freelancer_deadline=compute_freelancer_deadline(body.deadline, now),
    )
