"""
Shared fixtures: an in-memory SQLite database, a gateway that never leaves the
process, and a small seeded library (one librarian, one library, two seats,
one plan, one time slot tomorrow, two students).
"""

import os

# Settings are read at import time; point them at SQLite before any app import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

from datetime import date, time, timedelta
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models import Librarian, Library, Plan, Seat, Student, TimeSlot
from app.services.razorpay_service import RazorpayService, compute_signature, get_payment_gateway
from main import app

WEBHOOK_SECRET = "whsec_test_secret"


def make_engine(url: str = "sqlite://"):
    if url == "sqlite://":
        engine = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return engine


class FakeGateway(RazorpayService):
    """RazorpayService with the network edges replaced by in-memory records."""

    def __init__(self, key_secret: str = WEBHOOK_SECRET):
        super().__init__(key_id="rzp_test_key", key_secret=key_secret, payout_account_number="2323230000000000")
        self.orders = []
        self.requests = []
        self.fail_orders = False
        self.fail_paths = set()
        self.next_order_id = None

    def create_order(self, amount, currency="INR", receipt=None, notes=None):
        if self.fail_orders:
            return {"success": False, "error": "gateway unavailable", "message": "Failed to create order"}
        order_id = self.next_order_id or f"order_test{len(self.orders) + 1:06d}"
        order = {"id": order_id, "amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}}
        self.orders.append(order)
        return {"success": True, "order": order, "message": "Order created successfully"}

    def _post(self, path, payload, headers=None):
        self.requests.append({"path": path, "payload": payload, "headers": headers or {}})
        if path in self.fail_paths:
            raise httpx.ConnectError("connection refused")
        prefix = {"/contacts": "cont", "/fund_accounts": "fa", "/payouts": "pout"}[path]
        return {"id": f"{prefix}_test{len(self.requests):04d}", **payload}

    @property
    def payouts(self):
        return [r for r in self.requests if r["path"] == "/payouts"]

    def sign(self, razorpay_order_id: str, razorpay_payment_id: str) -> str:
        return compute_signature(self.key_secret, razorpay_order_id, razorpay_payment_id)


@pytest.fixture
def engine():
    engine = make_engine()
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def seed_library(db, slot_date=None, capacity=2, seat_count=2):
    """Insert a bookable library and return its rows."""
    slot_date = slot_date or date.today() + timedelta(days=1)
    librarian = Librarian(first_name="Asha", last_name="Rao", email="asha@example.com", contact_number="9000000001")
    db.add(librarian)
    db.flush()
    library = Library(librarian_id=librarian.id, library_name="Quiet Corner", city="Pune")
    db.add(library)
    db.flush()
    seats = [Seat(library_id=library.id, seat_number=f"A{i + 1}") for i in range(seat_count)]
    plan = Plan(library_id=library.id, plan_name="Day pass", days=1, price=Decimal("1000.00"))
    slot = TimeSlot(
        library_id=library.id,
        date=slot_date,
        start_time=time(9, 0),
        end_time=time(13, 0),
        capacity=capacity,
        booked_count=0,
    )
    students = [
        Student(first_name="Ravi", email="ravi@example.com"),
        Student(first_name="Meera", email="meera@example.com"),
    ]
    db.add_all(seats + [plan, slot] + students)
    db.commit()
    return SimpleNamespace(
        librarian=librarian,
        library=library,
        seats=seats,
        seat=seats[0],
        plan=plan,
        slot=slot,
        students=students,
        student=students[0],
    )


@pytest.fixture
def seeded(db):
    return seed_library(db)
