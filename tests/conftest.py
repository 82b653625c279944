import os

# Must be set before the session module builds its engine.
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from src.api.dependencies import get_db, get_payment_gateway, get_sms_client
from src.config.settings import Settings, get_settings
from src.domain.exceptions import PaymentProviderError
from src.infrastructure.db.models import Base
from src.infrastructure.gateways.sms_client import SmsResult
from src.infrastructure.gateways.uddoktapay_client import CheckoutSession
from src.main import app

WEBHOOK_KEY = "test-uddoktapay-key"


class FakeGateway:
    """In-memory stand-in for the hosted checkout provider."""

    def __init__(self):
        self.checkouts = []
        self.verify_calls = []
        self.verifications = {}
        self.fail_checkout = False

    def create_checkout(self, request):
        if self.fail_checkout:
            raise PaymentProviderError("Payment initiation failed")
        self.checkouts.append(request)
        payment_url = f"https://sandbox.uddoktapay.com/checkout/{request.invoice_id}"
        return CheckoutSession(
            payment_url=payment_url,
            raw={"status": True, "payment_url": payment_url},
        )

    def verify_payment(self, invoice_id):
        self.verify_calls.append(invoice_id)
        return self.verifications.get(
            invoice_id,
            {"status": "PENDING", "invoice_id": invoice_id},
        )


class FakeSms:
    def __init__(self):
        self.sent = []

    def send(self, phone, message):
        self.sent.append((phone, message))
        return SmsResult(success=True, message="SMS sent successfully")


@pytest.fixture
def settings():
    return Settings(
        uddoktapay_api_key=WEBHOOK_KEY,
        sms_api_key="sms-key",
        sms_sender_id="BABYWORLD",
    )


def file_engine(path):
    # One connection per session so concurrent tests really race.
    return create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=NullPool,
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = file_engine(tmp_path / "playground.db")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def client(session_factory, settings, gateway, sms):
    def override_get_db():
        with session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_sms_client] = lambda: sms
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def venue_today(settings):
    return datetime.now(ZoneInfo(settings.venue_timezone)).date()


@pytest.fixture
def future_date():
    return (date.today() + timedelta(days=5)).isoformat()


@pytest.fixture
def booking_id(client, future_date):
    response = client.post(
        "/bookings",
        json={
            "date": future_date,
            "time_slot": "10:00 - 11:00",
            "parent_name": "Rahim",
            "parent_phone": "01712345678",
            "child_count": 2,
        },
    )
    assert response.status_code == 200
    return response.json()["id"]
