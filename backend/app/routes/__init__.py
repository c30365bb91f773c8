"""API routes."""

from .orders import router as orders_router
from .payments import router as payments_router
from .pricing import router as pricing_router

__all__ = [
    "orders_router",
    "payments_router",
    "pricing_router",
]
