"""Marketplace wiring for the API: storage, services and background pollers."""

from typing import Annotated

from fastapi import Depends

from tasklynk import Marketplace
from tasklynk.config import get_settings as get_core_settings
from tasklynk.payments import ConfirmationPoller

from .logging_config import get_logger

logger = get_logger("tasklynk.api.database")

_marketplace: Marketplace | None = None
_pollers: dict[int, ConfirmationPoller] = {}


def get_marketplace() -> Marketplace:
    """Get the cached marketplace (storage from TASKLYNK_DATABASE_PATH)."""
    global _marketplace
    if _marketplace is None:
        _marketplace = Marketplace.from_settings(get_core_settings())
    return _marketplace


def get_market() -> Marketplace:
    """FastAPI dependency for the marketplace."""
    return get_marketplace()


# Type alias for dependency injection
Market = Annotated[Marketplace, Depends(get_market)]


# =============================================================================
# Confirmation pollers
# =============================================================================


def track_poller(payment_id: int, poller: ConfirmationPoller) -> None:
    """Remember a running poller so it can be cancelled later."""
    previous = _pollers.get(payment_id)
    if previous is not None and not previous.done:
        previous.cancel()
    # Drop finished pollers so the registry does not grow unbounded
    for pid in [pid for pid, p in _pollers.items() if p.done]:
        del _pollers[pid]
    _pollers[payment_id] = poller


def cancel_poller(payment_id: int) -> bool:
    """Stop local polling for a payment. Returns False if none was running."""
    poller = _pollers.pop(payment_id, None)
    if poller is None or poller.done:
        return False
    poller.cancel()
    return True


def cancel_all_pollers() -> int:
    count = 0
    for payment_id in list(_pollers):
        if cancel_poller(payment_id):
            count += 1
    return count
