"""
Test configuration and shared fixtures for the Clinic Scheduling test suite.

Uses a fresh in-memory SQLite database per test by default; point
TEST_DATABASE_URL at PostgreSQL to run the same suite against it.
"""

import hashlib
import hmac
import os
import uuid

# Must be set before core.config / core.database are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import re

import httpx
import pytest
import respx
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Generator, Iterable, Optional

from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from core import config
from core.database import create_repository_engine, create_tables, drop_tables, get_db
from models import Appointment, Provider, ProviderSchedule, Service
from models.enums import ActorRole, AppointmentStatus, PaymentStatus, ServicePaymentStatus
from services.jwt_service import TokenPayload, jwt_service
from services.payment_gateway import RazorpayGateway, get_payment_gateway
from utils.datetime_utils import add_minutes, clinic_now
from utils.id_utils import new_confirmation_number
from utils.pricing import to_paise


TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "rzp_test_secret"


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """
    Create a database engine with a clean schema for one test.

    SQLite in-memory uses a StaticPool so every session shares the one
    connection that holds the database.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_repository_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    else:
        engine = create_repository_engine(TEST_DATABASE_URL, poolclass=NullPool)

    drop_tables(bind=engine)
    create_tables(bind=engine)

    yield engine

    drop_tables(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session bound to the per-test engine."""
    TestingSession = sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = TestingSession()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope="function")
def concurrent_engine(tmp_path, db_engine) -> Generator[Engine, None, None]:
    """
    Engine for sessions running in parallel threads, each on its own connection.

    In-memory SQLite holds the database in one shared connection, so SQLite
    runs use a file under ``tmp_path``; a server database reuses the per-test
    engine.
    """
    if not TEST_DATABASE_URL.startswith("sqlite"):
        yield db_engine
        return

    engine = create_repository_engine(f"sqlite:///{tmp_path / 'scheduling.db'}")
    create_tables(bind=engine)

    yield engine

    engine.dispose()


@pytest.fixture
def gateway() -> RazorpayGateway:
    """Gateway configured with test credentials (HTTP calls must be mocked)."""
    return RazorpayGateway(key_id=TEST_KEY_ID, key_secret=TEST_KEY_SECRET, base_url="https://api.razorpay.test/v1")


class RazorpayOrders:
    """
    Orders served by a mocked ``GET /orders/{id}``.

    Registered orders are returned as the gateway would return them; unknown
    ids get the gateway's 400. ``pay_all`` answers every unregistered id with
    one paid order, for tests that book many times.
    """

    def __init__(self, router: respx.MockRouter, base_url: str):
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.default: Optional[Dict[str, Any]] = None
        self.route = router.get(url__regex=rf"^{re.escape(base_url)}/orders/[^/]+$").mock(
            side_effect=self._respond
        )

    @staticmethod
    def _order(amount: Decimal, service_id: str, patient_id: str, status: str, currency: str) -> Dict[str, Any]:
        paise = to_paise(amount)
        return {
            "entity": "order",
            "amount": paise,
            "amount_paid": paise if status == "paid" else 0,
            "currency": currency,
            "status": status,
            "notes": {"service_id": service_id, "patient_id": patient_id},
        }

    def add(
        self,
        order_id: str,
        amount: Decimal,
        service_id: str,
        patient_id: str = "patient-1",
        status: str = "paid",
        currency: str = "INR",
    ) -> None:
        self.orders[order_id] = self._order(amount, service_id, patient_id, status, currency)

    def pay_all(self, amount: Decimal, service_id: str, patient_id: str = "patient-1") -> None:
        self.default = self._order(amount, service_id, patient_id, "paid", "INR")

    def _respond(self, request: httpx.Request) -> httpx.Response:
        order_id = request.url.path.rsplit("/", 1)[-1]
        order = self.orders.get(order_id, self.default)
        if order is None:
            return httpx.Response(
                400, json={"error": {"code": "BAD_REQUEST_ERROR", "description": "The id provided does not exist"}}
            )
        return httpx.Response(200, json={**order, "id": order_id})


@pytest.fixture
def razorpay_orders(gateway) -> Generator[RazorpayOrders, None, None]:
    """Mock the gateway's order lookup for the duration of a test."""
    with respx.mock(assert_all_called=False) as router:
        yield RazorpayOrders(router, gateway.base_url)


@pytest.fixture
def client(db_session, gateway) -> Generator[TestClient, None, None]:
    """TestClient with the database and gateway dependencies overridden."""
    from main import app

    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            # Don't close the session as it's managed by the test fixture
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def disable_notifications(monkeypatch):
    """Keep tests from posting to a real webhook."""
    monkeypatch.setattr(config, "NOTIFICATION_WEBHOOK_URL", "")


# Helper functions for building test data

def future_day(days: int = 3) -> date:
    """A clinic-local date ``days`` from today."""
    return clinic_now().date() + timedelta(days=days)


def sign_payment(order_id: str, payment_id: str, secret: str = TEST_KEY_SECRET) -> str:
    """Produce the checkout signature the gateway would return."""
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def auth_headers(actor_id: str, role: ActorRole, name: Optional[str] = None) -> dict:
    """Bearer header for an actor."""
    token = jwt_service.create_access_token(TokenPayload(sub=actor_id, role=role, name=name))
    return {"Authorization": f"Bearer {token}"}


def create_provider(
    db_session: Session,
    name: str = "Dr. Asha Rao",
    image_url: Optional[str] = "https://cdn.example.com/asha.jpg",
    is_active: bool = True,
) -> Provider:
    provider = Provider(name=name, title="Dentist", image_url=image_url, is_active=is_active)
    db_session.add(provider)
    db_session.commit()
    return provider


def create_service(
    db_session: Session,
    name: str = "Consultation",
    duration_minutes: int = 30,
    price: Decimal = Decimal("1000.00"),
    is_active: bool = True,
) -> Service:
    service = Service(name=name, duration_minutes=duration_minutes, price=price, is_active=is_active)
    db_session.add(service)
    db_session.commit()
    return service


def create_weekly_schedule(
    db_session: Session,
    provider: Provider,
    open_time: str = "09:00",
    close_time: str = "17:00",
    break_start: Optional[str] = "13:00",
    break_end: Optional[str] = "14:00",
    days: Iterable[int] = range(7),
    is_available: bool = True,
) -> list[ProviderSchedule]:
    """Create the same template row for each weekday in ``days`` (0=Sunday)."""
    rows = []
    for day_of_week in days:
        row = ProviderSchedule(
            provider_id=provider.id,
            day_of_week=day_of_week,
            open_time=open_time,
            close_time=close_time,
            break_start=break_start,
            break_end=break_end,
            is_available=is_available,
        )
        db_session.add(row)
        rows.append(row)
    db_session.commit()
    return rows


def create_appointment(
    db_session: Session,
    provider: Provider,
    service: Service,
    appointment_date: date,
    start_time: str,
    patient_id: str = "patient-1",
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    payment_status: PaymentStatus = PaymentStatus.RESERVATION_PAID,
    reschedule_count: int = 0,
    max_reschedules: int = 2,
    payment_amount: Optional[Decimal] = Decimal("590.00"),
    payment_transaction_id: Optional[str] = None,
) -> Appointment:
    """
    Insert an appointment row directly, bypassing booking checks.

    Paid rows get a unique gateway payment ID unless ``payment_transaction_id`` is given.
    """
    if payment_transaction_id is None:
        payment_transaction_id = f"pay_{uuid.uuid4().hex[:14]}"
    appointment = Appointment(
        provider_id=provider.id,
        patient_id=patient_id,
        service_id=service.id,
        service_name=service.name,
        provider_name=provider.name,
        provider_image_url=provider.image_url,
        appointment_date=appointment_date,
        start_time=start_time,
        end_time=add_minutes(start_time, service.duration_minutes),
        duration_minutes=service.duration_minutes,
        status=status,
        payment_status=payment_status,
        service_payment_status=ServicePaymentStatus.PENDING,
        reschedule_count=reschedule_count,
        max_reschedules=max_reschedules,
        confirmation_number=new_confirmation_number(),
        payment_amount=payment_amount if payment_status != PaymentStatus.PENDING else None,
        payment_transaction_id=payment_transaction_id if payment_status != PaymentStatus.PENDING else None,
    )
    db_session.add(appointment)
    db_session.commit()
    return appointment


@pytest.fixture
def provider(db_session) -> Provider:
    """Provider open 09:00-17:00 every day with a 13:00-14:00 break."""
    provider = create_provider(db_session)
    create_weekly_schedule(db_session, provider)
    return provider


@pytest.fixture
def service(db_session) -> Service:
    """30-minute consultation priced at 1000."""
    return create_service(db_session)
