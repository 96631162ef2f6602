"""
Shared test fixtures — file-based SQLite database, test client, auth helpers,
demo data and a mocked payment gateway.
"""

import os
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set secrets before importing app modules
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["FLUTTERWAVE_WEBHOOK_HASH"] = "test-webhook-hash"
os.environ["SEED_DEMO_DATA"] = "false"

from hubroute.auth import create_access_token
from hubroute.database import Base, get_db
from hubroute.main import app
from hubroute.payment_gateway import FlutterwaveGateway
from hubroute.routers.payments import get_gateway
from hubroute.schemas import PaymentEvent
from hubroute.seed_data import seed


TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

CUSTOMER_ID = "cust-alice"
OTHER_CUSTOMER_ID = "cust-bob"
HUB_ID = "hub-002"


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def db():
    """Direct database session for test setup/assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    """Demo catalog (part-001 … part-006) and hubs (hub-001 … hub-005)."""
    seed(db)
    return db


@pytest.fixture
def auth_headers():
    token = create_access_token(CUSTOMER_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_headers():
    token = create_access_token(OTHER_CUSTOMER_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def hub_headers():
    """Operator token for MechPrecision Toronto (hub-002)."""
    token = create_access_token(HUB_ID, role="hub")
    return {"Authorization": f"Bearer {token}"}


def make_event(reference, status="successful", amount=349.60, currency="NGN", transaction_id="9001"):
    return PaymentEvent(
        reference=reference,
        transaction_id=transaction_id,
        status=status,
        amount=amount,
        currency=currency,
        gateway_timestamp=datetime(2026, 10, 19, 12, 0, 0),
    )


@pytest.fixture
def gateway():
    """
    Stand-in for Flutterwave. Tests set gateway.verify_transaction.return_value
    to the event the gateway should report.
    """
    mock = MagicMock(spec=FlutterwaveGateway)
    mock.initialize_transaction.return_value = "https://checkout.example/pay/abc123"
    mock.verify_webhook_signature.side_effect = lambda value: value == "test-webhook-hash"
    app.dependency_overrides[get_gateway] = lambda: mock
    yield mock
    app.dependency_overrides.pop(get_gateway, None)
