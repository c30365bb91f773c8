"""Order inspection commands for the TaskLynk CLI."""

import json
from typing import TYPE_CHECKING

from tasklynk.errors import NotFoundError

if TYPE_CHECKING:
    from tasklynk.core import Marketplace


def cmd_orders(args, market: "Marketplace"):
    """Handle orders subcommands."""
    service = market.orders

    try:
        order = service.get_order(args.id)
    except NotFoundError as e:
        print(f"Error: {e}")
        return 1

    if args.orders_action == "show":
        if args.json:
            data = order.to_dict()
            data["unmet_requirements"] = service.submission_status(order.id)
            print(json.dumps(data, indent=2))
        else:
            print(f"Order {order.display_id}: {order.title}")
            print(f"  Service: {order.work_type} x{order.quantity}")
            print(f"  Amount: {order.amount}{' (custom)' if order.custom_amount else ''}")
            print(f"  Status: {order.status}")
            print(f"  Paid: {'yes' if order.payment_confirmed else 'no'}")
            print(f"  Deadline: {order.deadline.isoformat()}")
        return 0

    if args.orders_action == "history":
        transitions = service.get_transitions(order.id)
        if args.json:
            print(json.dumps([t.to_dict() for t in transitions], indent=2))
        else:
            for t in transitions:
                when = t.created_at.isoformat() if t.created_at else "?"
                print(f"  {when}  {t.from_status or '-'} -> {t.to_status}  ({t.event}, actor {t.actor_id})")
        return 0

    return 1
