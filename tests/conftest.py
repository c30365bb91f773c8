"""
Pytest fixtures and test configuration for TaskLynk tests.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from tasklynk.events import InMemoryNotifier
from tasklynk.orders import Actor, ActorRole, ArtifactType, OrderEvent, OrderService
from tasklynk.payments import ChargeRequest, PaymentReconciliationEngine
from tasklynk.storage import InMemoryMarketplaceStorage

NOW = datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)

SYSTEM_ACTOR_ID = 1


class FakeClock:
    """Settable clock injected into services."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return InMemoryMarketplaceStorage()


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def admin():
    return Actor(id=SYSTEM_ACTOR_ID, role=ActorRole.ADMIN)


@pytest.fixture
def client_actor():
    return Actor(id=10, role=ActorRole.CLIENT)


@pytest.fixture
def other_client():
    return Actor(id=11, role=ActorRole.CLIENT)


@pytest.fixture
def freelancer():
    return Actor(id=20, role=ActorRole.FREELANCER)


@pytest.fixture
def other_freelancer():
    return Actor(id=21, role=ActorRole.FREELANCER)


@pytest.fixture
def order_service(storage, notifier, clock):
    return OrderService(storage, notifier=notifier, clock=clock)


@pytest.fixture
def gateway():
    """Gateway double: charges are accepted and stay pending until told otherwise."""
    gw = AsyncMock()
    gw.initiate_charge.return_value = ChargeRequest(provider_reference="ws_CO_0001")
    return gw


@pytest.fixture
def engine(storage, gateway, notifier, clock):
    return PaymentReconciliationEngine(
        orders=storage,
        payments=storage,
        system_actor_id=SYSTEM_ACTOR_ID,
        gateway=gateway,
        notifier=notifier,
        timeout_seconds=120,
        poll_interval_seconds=2,
        clock=clock,
    )


@pytest.fixture
def make_order(order_service, client_actor, clock):
    """Factory for pending orders; defaults to a 4-page essay due in 20 hours (KSh 1000)."""

    def _make(**overrides):
        params = {
            "title": "Essay on monetary policy",
            "instructions": "APA, 4 pages, 6 sources",
            "catalog_key": "essay",
            "quantity": 4,
            "deadline": clock.now + timedelta(hours=20),
        }
        params.update(overrides)
        client = params.pop("client", client_actor)
        return order_service.create_order(client, **params)

    return _make


@pytest.fixture
def upload_all(order_service):
    """Record one artifact of each given type (default: everything submission needs)."""

    def _upload(order_id, uploader, types=None):
        for artifact_type in types or REQUIRED_TYPES:
            order_service.record_artifact(
                order_id,
                uploader,
                artifact_type,
                f"{artifact_type.value}.pdf",
                f"https://files.example.com/{order_id}/{artifact_type.value}.pdf",
            )

    return _upload


REQUIRED_TYPES = (
    ArtifactType.DRAFT,
    ArtifactType.FINAL_DOCUMENT,
    ArtifactType.PLAGIARISM_REPORT,
    ArtifactType.AI_REPORT,
)


@pytest.fixture
def delivered_order(order_service, make_order, upload_all, admin, freelancer):
    """A pending order driven through approval, work and delivery."""
    order = make_order()
    order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
    order_service.request_transition(order.id, OrderEvent.ASSIGN, admin, freelancer_id=freelancer.id)
    order_service.request_transition(order.id, OrderEvent.START_WORK, freelancer)
    upload_all(order.id, freelancer)
    order_service.request_transition(order.id, OrderEvent.SUBMIT, freelancer)
    return order_service.request_transition(order.id, OrderEvent.ADMIN_DELIVER, admin)
