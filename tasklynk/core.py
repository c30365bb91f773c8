"""Wiring for the TaskLynk core: one storage, one order service, one engine."""

import logging
from dataclasses import dataclass
from typing import Optional

from tasklynk.config import Settings
from tasklynk.events import LoggingNotifier, Notifier
from tasklynk.orders.service import OrderService
from tasklynk.payments.engine import PaymentReconciliationEngine
from tasklynk.payments.gateway import GatewayClient, build_gateway_router
from tasklynk.storage import create_storage

logger = logging.getLogger(__name__)


@dataclass
class Marketplace:
    """Services sharing a single storage backend."""

    storage: object
    orders: OrderService
    payments: PaymentReconciliationEngine
    settings: Settings

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        storage: Optional[object] = None,
        gateway: Optional[GatewayClient] = None,
        notifier: Optional[Notifier] = None,
    ) -> "Marketplace":
        storage = storage if storage is not None else create_storage(settings.database_path)
        notifier = notifier or LoggingNotifier()
        gateway = gateway if gateway is not None else build_gateway_router(settings)

        logger.info(
            f"Marketplace ready | storage={type(storage).__name__} | "
            f"payment_timeout={settings.payment_timeout_seconds}s"
        )
        return cls(
            storage=storage,
            orders=OrderService(storage, notifier=notifier),
            payments=PaymentReconciliationEngine(
                orders=storage,
                payments=storage,
                system_actor_id=settings.system_actor_id,
                gateway=gateway,
                notifier=notifier,
                timeout_seconds=settings.payment_timeout_seconds,
                poll_interval_seconds=settings.payment_poll_interval_seconds,
            ),
            settings=settings,
        )
