"""Storage backends for TaskLynk.

Both backends implement ``OrderStorage`` and ``PaymentStorage``:
- InMemoryMarketplaceStorage: testing and local development
- SQLiteMarketplaceStorage: single-node persistence
"""

from typing import Optional

from tasklynk.storage.memory import InMemoryMarketplaceStorage
from tasklynk.storage.sqlite import SQLiteMarketplaceStorage


def create_storage(database_path: Optional[str] = None):
    """Build the configured backend: SQLite when a path is given, else in-memory."""
    if database_path:
        return SQLiteMarketplaceStorage(database_path)
    return InMemoryMarketplaceStorage()


__all__ = [
    "InMemoryMarketplaceStorage",
    "SQLiteMarketplaceStorage",
    "create_storage",
]
