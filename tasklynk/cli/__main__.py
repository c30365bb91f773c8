"""
TaskLynk CLI - pricing quotes and marketplace maintenance.

Usage:
    tasklynk quote SERVICE QUANTITY [--hours H] [--json]
    tasklynk catalog [--json]
    tasklynk orders show ID [--json]
    tasklynk orders history ID [--json]
    tasklynk payments expire [--json]
    tasklynk payments show ID [--json]
"""

import argparse
import logging
import sys

from tasklynk.cli.commands.orders import cmd_orders
from tasklynk.cli.commands.payments import cmd_payments
from tasklynk.cli.commands.pricing import cmd_catalog, cmd_quote
from tasklynk.config import get_settings
from tasklynk.core import Marketplace

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tasklynk",
        description="Order lifecycle, pricing and payment reconciliation for TaskLynk",
    )
    parser.add_argument("--db", help="SQLite database path (overrides TASKLYNK_DATABASE_PATH)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable info logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # quote
    p_quote = subparsers.add_parser("quote", help="Quote a service price")
    p_quote.add_argument("service", help="Catalog key (e.g. essay)")
    p_quote.add_argument("quantity", type=int, help="Pages, slides or units")
    p_quote.add_argument(
        "--hours", type=float, default=24.0, help="Hours until the deadline (default 24)"
    )
    p_quote.add_argument("--json", "-j", action="store_true")

    # catalog
    p_catalog = subparsers.add_parser("catalog", help="List the service catalog")
    p_catalog.add_argument("--json", "-j", action="store_true")

    # orders
    p_orders = subparsers.add_parser("orders", help="Inspect orders")
    orders_sub = p_orders.add_subparsers(dest="orders_action", required=True)
    for action, help_text in (("show", "Show an order"), ("history", "Show status history")):
        p = orders_sub.add_parser(action, help=help_text)
        p.add_argument("id", type=int)
        p.add_argument("--json", "-j", action="store_true")

    # payments
    p_payments = subparsers.add_parser("payments", help="Payment maintenance")
    payments_sub = p_payments.add_subparsers(dest="payments_action", required=True)
    p_expire = payments_sub.add_parser("expire", help="Time out stale pending payments")
    p_expire.add_argument("--json", "-j", action="store_true")
    p_show = payments_sub.add_parser("show", help="Show a payment")
    p_show.add_argument("id", type=int)
    p_show.add_argument("--json", "-j", action="store_true")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger("tasklynk").setLevel(logging.INFO)

    if args.command == "quote":
        return cmd_quote(args)
    if args.command == "catalog":
        return cmd_catalog(args)

    settings = get_settings()
    if args.db:
        settings = settings.model_copy(update={"database_path": args.db})
    if not settings.database_path:
        print("Error: no database configured (set TASKLYNK_DATABASE_PATH or pass --db)")
        return 1
    market = Marketplace.from_settings(settings)

    if args.command == "orders":
        return cmd_orders(args, market)
    if args.command == "payments":
        return cmd_payments(args, market)
    return 1


if __name__ == "__main__":
    sys.exit(main())
