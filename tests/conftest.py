import os

os.environ["DATABASE_URL"] = "sqlite://"

import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from tableside.application.container import build_container
from tableside.config import Settings
from tableside.domain.clock import FixedClock
from tableside.domain.exceptions import GatewayError
from tableside.infrastructure.db.models import Base
from tableside.infrastructure.db.session import create_db_engine, create_session_factory
from tableside.infrastructure.gateway.signature import SignatureVerifier
from tableside.main import create_app

GATEWAY_SECRET = "test_gateway_secret"


class FakeGateway:
    provider = "RAZORPAY"
    key_id = "rzp_test_key"

    def __init__(self):
        self.calls = []
        self.fail = False
        self._lock = threading.Lock()

    def create_gateway_order(self, amount_minor_units, currency, metadata):
        if self.fail:
            raise GatewayError("Payment gateway timed out.")
        with self._lock:
            self.calls.append(
                {
                    "amount": amount_minor_units,
                    "currency": currency,
                    "metadata": metadata,
                }
            )
            return f"order_test_{len(self.calls)}"


class RecordingNotifier:
    def __init__(self):
        self.events = []
        self._lock = threading.Lock()
        self.delivered = threading.Event()

    def notify(self, event, payload):
        with self._lock:
            self.events.append((event, payload))
        self.delivered.set()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'tableside.db'}")
    Base.metadata.create_all(bind=engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        db_connect_max_retries=1,
        db_connect_retry_delay=0.0,
        razorpay_key_id=FakeGateway.key_id,
        razorpay_key_secret=GATEWAY_SECRET,
        lock_timeout_seconds=10.0,
        log_level="DEBUG",
        invoice_tax_rate=Decimal("0.05"),
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def signer():
    return SignatureVerifier(GATEWAY_SECRET)


@pytest.fixture
def container(settings, session_factory, gateway, notifier, clock):
    container = build_container(
        settings,
        session_factory=session_factory,
        gateway=gateway,
        notifier=notifier,
        clock=clock,
    )
    yield container
    container.close()


@pytest.fixture
def reservations(container):
    return container.reservations


@pytest.fixture
def orders(container):
    return container.orders


@pytest.fixture
def payments(container):
    return container.payments


@pytest.fixture
def menu(container):
    return container.menu


@pytest.fixture
def tables(reservations):
    return {
        "T1": reservations.add_table("T1", capacity=4, location="Window"),
        "T2": reservations.add_table("T2", capacity=2, location="Patio"),
    }


@pytest.fixture
def menu_items(menu):
    return {
        "M1": menu.add_item("Cappuccino", Decimal("50.00"), category="COFFEE"),
        "M2": menu.add_item("Club Sandwich", Decimal("120.00"), category="FOOD"),
    }


@pytest.fixture
def client(settings, session_factory, gateway, notifier, clock):
    app = create_app(
        settings=settings,
        session_factory=session_factory,
        gateway=gateway,
        notifier=notifier,
        clock=clock,
    )
    with TestClient(app) as test_client:
        yield test_client
