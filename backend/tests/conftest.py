"""Pytest configuration and fixtures."""

import os
import secrets
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("AUTO_POLL_PAYMENTS", "false")
os.environ.setdefault("TASKLYNK_SYSTEM_ACTOR_ID", "1")

from app.database import get_market  # noqa: E402
from app.main import app  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tasklynk import Marketplace  # noqa: E402
from tasklynk.config import Settings as CoreSettings  # noqa: E402
from tasklynk.events import InMemoryNotifier  # noqa: E402
from tasklynk.orders import Actor, ActorRole, ArtifactType, OrderEvent  # noqa: E402
from tasklynk.payments import ChargeRequest  # noqa: E402
from tasklynk.storage import InMemoryMarketplaceStorage  # noqa: E402

MPESA_WEBHOOK_SECRET = "whsec_test_only"
PAYSTACK_SECRET = "sk_test_only"

ADMIN = Actor(id=1, role=ActorRole.ADMIN)
CLIENT = Actor(id=10, role=ActorRole.CLIENT)
OTHER_CLIENT = Actor(id=11, role=ActorRole.CLIENT)
FREELANCER = Actor(id=20, role=ActorRole.FREELANCER)


@pytest.fixture
def gateway():
    """Gateway double: every charge is accepted and stays pending."""
    gw = AsyncMock()
    gw.initiate_charge.return_value = ChargeRequest(
        provider_reference="ws_CO_TEST_0001", message="Success. Request accepted for processing"
    )
    return gw


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def market(gateway, notifier):
    settings = CoreSettings(
        system_actor_id=1,
        mpesa_webhook_secret=MPESA_WEBHOOK_SECRET,
        paystack_secret_key=PAYSTACK_SECRET,
    )
    return Marketplace.from_settings(
        settings, storage=InMemoryMarketplaceStorage(), gateway=gateway, notifier=notifier
    )


@pytest.fixture
def client(market):
    """Create a test client bound to an in-memory marketplace."""
    app.dependency_overrides[get_market] = lambda: market
    yield TestClient(app)
    app.dependency_overrides.pop(get_market, None)


def _headers(actor: Actor) -> dict:
    from app.auth import create_access_token
    from app.config import get_settings

    token = create_access_token(actor.id, actor.role, get_settings())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return _headers(ADMIN)


@pytest.fixture
def client_headers():
    return _headers(CLIENT)


@pytest.fixture
def other_client_headers():
    return _headers(OTHER_CLIENT)


@pytest.fixture
def freelancer_headers():
    return _headers(FREELANCER)


@pytest.fixture
def pending_order(market):
    """A 4-page essay due in two days (KSh 1000)."""
    return market.orders.create_order(
        CLIENT,
        title="Essay on monetary policy",
        instructions="APA, 4 pages, 6 sources",
        catalog_key="essay",
        quantity=4,
        deadline=datetime.now(timezone.utc) + timedelta(days=2),
    )


@pytest.fixture
def delivered_order(market, pending_order):
    """The pending order driven through approval, work and delivery."""
    orders = market.orders
    order_id = pending_order.id
    orders.request_transition(order_id, OrderEvent.ADMIN_APPROVE, ADMIN)
    orders.request_transition(order_id, OrderEvent.ASSIGN, ADMIN, freelancer_id=FREELANCER.id)
    orders.request_transition(order_id, OrderEvent.START_WORK, FREELANCER)
    for artifact_type in (
        ArtifactType.DRAFT,
        ArtifactType.FINAL_DOCUMENT,
        ArtifactType.PLAGIARISM_REPORT,
        ArtifactType.AI_REPORT,
    ):
        orders.record_artifact(
            order_id,
            FREELANCER,
            artifact_type,
            f"{artifact_type.value}.pdf",
            f"https://files.example.com/{order_id}/{artifact_type.value}.pdf",
        )
    orders.request_transition(order_id, OrderEvent.SUBMIT, FREELANCER)
    return orders.request_transition(order_id, OrderEvent.ADMIN_DELIVER, ADMIN)
