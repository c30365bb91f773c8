"""TaskLynk - order lifecycle, pricing and payment reconciliation for a managed marketplace."""

from tasklynk.core import Marketplace
from tasklynk.errors import ErrorCode, MarketplaceError

__version__ = "0.4.0"

__all__ = ["Marketplace", "MarketplaceError", "ErrorCode", "__version__"]
