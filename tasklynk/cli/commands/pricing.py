"""Pricing commands for the TaskLynk CLI."""

import json
from datetime import datetime, timedelta, timezone

from tasklynk.errors import MarketplaceError
from tasklynk.pricing.calculator import (
    compute_freelancer_deadline,
    compute_minimum_amount,
    is_urgent,
    payout_for_category,
)
from tasklynk.pricing.catalog import SERVICE_CATALOG, get_catalog_entry


def cmd_quote(args):
    """Quote the minimum client price and freelancer payout for a service."""
    now = datetime.now(timezone.utc)
    deadline = now + timedelta(hours=args.hours)

    try:
        entry = get_catalog_entry(args.service)
        amount = compute_minimum_amount(entry.key, args.quantity, deadline, now)
    except (MarketplaceError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    pages = args.quantity if entry.quantity_field == "pages" else 0
    slides = args.quantity if entry.quantity_field == "slides" else 0
    payout = payout_for_category(entry.payout, pages, slides)
    urgent = is_urgent(deadline, now) and not entry.surcharge_exempt

    if args.json:
        print(
            json.dumps(
                {
                    "service": entry.key,
                    "quantity": args.quantity,
                    "unit": entry.unit_type.value,
                    "amount": str(amount),
                    "urgent": urgent,
                    "freelancer_payout": str(payout),
                    "freelancer_deadline": compute_freelancer_deadline(deadline, now).isoformat(),
                }
            )
        )
    else:
        print(f"{entry.name}: {args.quantity} {entry.unit_type.value}(s)")
        print(f"  Minimum price: KSh {amount}" + (" (urgent +30%)" if urgent else ""))
        print(f"  Freelancer payout: KSh {payout}")
    return 0


def cmd_catalog(args):
    """List the service catalog."""
    entries = sorted(SERVICE_CATALOG.values(), key=lambda e: (e.category.value, e.key))
    if args.json:
        print(
            json.dumps(
                [
                    {
                        "key": e.key,
                        "name": e.name,
                        "rate": str(e.rate),
                        "unit": e.unit_type.value,
                        "category": e.category.value,
                    }
                    for e in entries
                ],
                indent=2,
            )
        )
        return 0

    category = None
    for entry in entries:
        if entry.category != category:
            category = entry.category
            print(f"\n{category.value.title()}")
        print(f"  {entry.key:<26} KSh {entry.rate:>6} / {entry.unit_type.value}")
    return 0
