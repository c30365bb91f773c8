"""Pricing and earnings calculator.

Client prices come from the service catalog; freelancer payouts come from a
separate rate table keyed by payout category. Every function here is pure:
the current time is always passed in.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from tasklynk.errors import AmountBelowMinimumError, UnknownServiceError
from tasklynk.pricing.catalog import (
    PayoutCategory,
    get_catalog_entry,
)

CENTS = Decimal("0.01")

URGENT_WINDOW = timedelta(hours=8)
URGENCY_MULTIPLIER = Decimal("1.30")

# Share of the client's lead time given to the freelancer.
FREELANCER_DEADLINE_FRACTION = 0.6


# =============================================================================
# Client pricing
# =============================================================================


def is_urgent(deadline: datetime, now: datetime) -> bool:
    """True when the deadline is less than eight hours away."""
    return deadline - now < URGENT_WINDOW


def compute_minimum_amount(
    catalog_key: str,
    quantity: int,
    deadline: datetime,
    now: datetime,
) -> Decimal:
    """Minimum legal client price for an order.

    ``rate x quantity``, multiplied by 1.30 when the deadline is under eight
    hours away (editing services excepted), rounded once to cents.

    Raises:
        UnknownServiceError: catalog_key is not in the catalog
        ValueError: quantity is not a positive integer
    """
    entry = get_catalog_entry(catalog_key)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValueError(f"quantity must be a positive integer, got {quantity!r}")

    amount = entry.rate * quantity
    if not entry.surcharge_exempt and is_urgent(deadline, now):
        amount = amount * URGENCY_MULTIPLIER
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def validate_amount(amount: Decimal, minimum: Decimal) -> Decimal:
    """Check a client-chosen amount against the minimum.

    Returns the amount rounded to cents.

    Raises:
        AmountBelowMinimumError: amount < minimum (carries the minimum)
    """
    amount = Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
    if amount < minimum:
        raise AmountBelowMinimumError(amount, minimum)
    return amount


def compute_freelancer_deadline(deadline: datetime, now: datetime) -> datetime:
    """Internal deadline for the freelancer: 60% of the remaining lead time."""
    lead = deadline - now
    if lead <= timedelta(0):
        return deadline
    return now + lead * FREELANCER_DEADLINE_FRACTION


# =============================================================================
# Freelancer payout
# =============================================================================

# category -> (per page, per slide, floor)
PAYOUT_RATES: dict[PayoutCategory, tuple[Decimal, Decimal, Decimal]] = {
    PayoutCategory.ai_removal: (Decimal("60"), Decimal("30"), Decimal("60")),
    PayoutCategory.plagiarism_report: (Decimal("0"), Decimal("0"), Decimal("30")),
    PayoutCategory.proofreading: (Decimal("30"), Decimal("0"), Decimal("30")),
    PayoutCategory.writing: (Decimal("150"), Decimal("90"), Decimal("150")),
}


def classify_work_type(work_type: Optional[str]) -> PayoutCategory:
    """Map a legacy free-text work type to a payout category.

    Only used at the boundary with legacy records; internal callers resolve
    the category through the catalog.
    """
    normalized = str(work_type or "").lower().strip()
    if "ai removal" in normalized or "ai-removal" in normalized or "ai content" in normalized:
        return PayoutCategory.ai_removal
    if "plag" in normalized:
        return PayoutCategory.plagiarism_report
    if "grammarly" in normalized or "proofread" in normalized:
        return PayoutCategory.proofreading
    return PayoutCategory.writing


def _count(value: Any) -> int:
    try:
        count = int(Decimal(str(value)))
    except (InvalidOperation, OverflowError, TypeError, ValueError):
        return 0
    return max(count, 0)


def payout_for_category(category: PayoutCategory, pages: Any = 0, slides: Any = 0) -> Decimal:
    """Payout for a known category. Never raises; bad counts count as zero."""
    per_page, per_slide, floor = PAYOUT_RATES[category]
    if category == PayoutCategory.plagiarism_report:
        return floor
    total = per_page * _count(pages) + per_slide * _count(slides)
    return max(total, floor)


def compute_freelancer_payout(work_type: Optional[str], pages: Any = 0, slides: Any = 0) -> Decimal:
    """Freelancer earnings for a legacy work-type string.

    Total over all inputs: unparseable work types fall back to the writing
    rates and unparseable counts to zero, so the floor always applies.
    """
    return payout_for_category(classify_work_type(work_type), pages, slides)


def payout_for_order(order) -> Decimal:
    """Freelancer earnings for an order, resolved through its catalog entry.

    Orders whose catalog key has left the catalog fall back to their recorded
    work type.
    """
    try:
        category = get_catalog_entry(order.catalog_key).payout
    except UnknownServiceError:
        return compute_freelancer_payout(order.work_type, order.pages or 0, order.slides or 0)
    return payout_for_category(category, order.pages or 0, order.slides or 0)
