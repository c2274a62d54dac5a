"""
Pytest configuration for SAKAN backend tests.

Ensures the project root is in the Python path and the settings are loaded
from a test environment before any application module is imported.
"""

import json
import os
import sys
from pathlib import Path
from types import SimpleNamespace

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("LEGACY_DATABASE_URL", None)
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["STRIPE_ESSENTIAL_MONTH_PRICE_ID"] = "price_essential_month"
os.environ["STRIPE_ESSENTIAL_YEAR_PRICE_ID"] = "price_essential_year"
os.environ["STRIPE_PREMIUM_MONTH_PRICE_ID"] = "price_premium_month"
os.environ["STRIPE_PREMIUM_YEAR_PRICE_ID"] = "price_premium_year"
os.environ.pop("SENDGRID_API_KEY", None)

import pytest
import stripe
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from core.security import create_access_token, create_admin_token, hash_password
from models.models import Admin, Profile, ProfileResidence, ProfileRole, Residence

VALID_SIGNATURE = "t=1,v1=valid"
PERIOD_START = 1_700_000_000
PERIOD_END = 1_900_000_000


class FakeGateway:
    """In-memory stand-in for StripeGateway."""

    def __init__(self):
        self.api_key = "sk_test_dummy"
        self.subscriptions = {}
        self.customers = {}
        self.cancelled_customers = []
        self.retrieve_calls = 0

    def construct_event(self, payload, sig_header, secret):
        if sig_header != VALID_SIGNATURE or secret != "whsec_test":
            raise stripe.SignatureVerificationError("No signatures found matching the expected signature", sig_header)
        return json.loads(payload)

    def retrieve_subscription(self, subscription_id):
        self.retrieve_calls += 1
        return self.subscriptions[subscription_id]

    def retrieve_customer(self, customer_id):
        return self.customers.get(customer_id, {"id": customer_id, "metadata": {}})

    def cancel_customer_subscriptions(self, customer_id):
        self.cancelled_customers.append(customer_id)
        return [s["id"] for s in self.subscriptions.values() if s.get("customer") == customer_id]


def make_subscription(
    subscription_id="sub_1",
    customer="cus_1",
    price_id="price_essential_month",
    status="active",
    interval="month",
    unit_amount=999,
    **overrides,
):
    subscription = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "currency": "usd",
        "created": PERIOD_START,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "cancel_at_period_end": False,
        "canceled_at": None,
        "metadata": {},
        "items": {
            "data": [
                {"price": {"id": price_id, "unit_amount": unit_amount, "recurring": {"interval": interval}}},
            ]
        },
    }
    subscription.update(overrides)
    return subscription


def make_event(event_type, data_object):
    return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": data_object}}).encode()


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


# ============================================================
# Database
# ============================================================
@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def residence_setup(session):
    """
    One residence with its syndic, two residents (one linked through
    profile_residences only) and a second syndic living there.
    """
    residence = Residence(name="Résidence Atlas", address="5 Avenue Hassan II", city="Rabat")
    session.add(residence)
    session.commit()
    session.refresh(residence)

    syndic = Profile(
        email="syndic@example.com",
        full_name="Sara Syndic",
        role=ProfileRole.SYNDIC.value,
        verified=True,
        onboarding_completed=True,
        residence_id=residence.id,
    )
    alice = Profile(
        email="alice@example.com",
        full_name="Alice Amrani",
        role=ProfileRole.RESIDENT.value,
        residence_id=residence.id,
        apartment_number="A1",
    )
    bob = Profile(email="bob@example.com", full_name="Bob Bennani", role=ProfileRole.RESIDENT.value, apartment_number="B2")
    omar = Profile(
        email="omar@example.com",
        full_name="Omar Othmani",
        role=ProfileRole.SYNDIC.value,
        residence_id=residence.id,
    )
    session.add_all([syndic, alice, bob, omar])
    session.commit()

    residence.syndic_user_id = syndic.id
    session.add(residence)
    session.add(ProfileResidence(profile_id=bob.id, residence_id=residence.id, apartment_number="B2"))
    session.commit()

    for obj in (residence, syndic, alice, bob, omar):
        session.refresh(obj)
    return SimpleNamespace(residence=residence, syndic=syndic, alice=alice, bob=bob, omar=omar)


@pytest.fixture
def admin(session):
    admin = Admin(email="admin@sakan.app", full_name="Platform Admin", password_hash=hash_password("admin-pass"))
    session.add(admin)
    session.commit()
    session.refresh(admin)
    return admin


# ============================================================
# HTTP
# ============================================================
@pytest.fixture
def client(session, gateway):
    from fastapi.testclient import TestClient

    from core.database import get_legacy_session, get_session
    from main import app
    from services.payment_service import get_stripe_gateway

    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_legacy_session] = lambda: None
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user_token():
    def _token(profile):
        return create_access_token({"user_id": profile.id, "sub": profile.email})
    return _token


@pytest.fixture
def admin_token(admin):
    return create_admin_token(admin)
