"""Pricing subsystem for TaskLynk.

Models:
- CatalogEntry: Static configuration for one orderable service
- SERVICE_CATALOG: The canonical catalog
- UnitType / ServiceCategory / PayoutCategory: Catalog enums

Calculator:
- compute_minimum_amount: Client minimum price with urgency surcharge
- validate_amount: Custom amount check against the minimum
- compute_freelancer_payout / payout_for_order: Freelancer earnings
- compute_freelancer_deadline: Freelancer's internal deadline
"""

from tasklynk.pricing.calculator import (
    PAYOUT_RATES,
    URGENCY_MULTIPLIER,
    classify_work_type,
    compute_freelancer_deadline,
    compute_freelancer_payout,
    compute_minimum_amount,
    is_urgent,
    payout_for_category,
    payout_for_order,
    validate_amount,
)
from tasklynk.pricing.catalog import (
    SERVICE_CATALOG,
    CatalogEntry,
    PayoutCategory,
    ServiceCategory,
    UnitType,
    find_by_work_type,
    get_catalog_entry,
)

__all__ = [
    # Catalog
    "SERVICE_CATALOG",
    "CatalogEntry",
    "UnitType",
    "ServiceCategory",
    "PayoutCategory",
    "get_catalog_entry",
    "find_by_work_type",
    # Calculator
    "compute_minimum_amount",
    "validate_amount",
    "is_urgent",
    "compute_freelancer_deadline",
    "compute_freelancer_payout",
    "classify_work_type",
    "payout_for_category",
    "payout_for_order",
    "PAYOUT_RATES",
    "URGENCY_MULTIPLIER",
]
