"""Payment maintenance commands for the TaskLynk CLI."""

import json
from typing import TYPE_CHECKING

from tasklynk.errors import NotFoundError

if TYPE_CHECKING:
    from tasklynk.core import Marketplace


def cmd_payments(args, market: "Marketplace"):
    """Handle payments subcommands."""
    engine = market.payments

    if args.payments_action == "expire":
        expired = engine.expire_stale_payments()
        if args.json:
            print(json.dumps({"expired": [p.id for p in expired]}))
        elif expired:
            print(f"Expired {len(expired)} stale payment(s):")
            for payment in expired:
                print(f"  #{payment.id} order={payment.order_id} amount={payment.amount}")
        else:
            print("No stale payments.")
        return 0

    if args.payments_action == "show":
        try:
            payment = engine.get_payment(args.id)
        except NotFoundError as e:
            print(f"Error: {e}")
            return 1
        if args.json:
            print(json.dumps(payment.to_dict(), indent=2))
        else:
            print(f"Payment #{payment.id} ({payment.method})")
            print(f"  Order: {payment.order_id}")
            print(f"  Amount: {payment.amount}")
            print(f"  Status: {payment.status}")
            if payment.failure_reason:
                print(f"  Failure: {payment.failure_reason} - {payment.failure_detail}")
            if payment.receipt_id:
                print(f"  Receipt: {payment.receipt_id}")
        return 0

    return 1
