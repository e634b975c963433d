import os

# Must be set before the application modules create their engine.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import base64
import json
import time
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.api.routes.routes import get_db, get_notifier, get_rate_limiter, get_settings
from src.domain.signature import compute_signature
from src.infrastructure.config import WebhookSettings
from src.infrastructure.db.models import Base, HallBooking, Order, OrderItem, Profile
from src.infrastructure.rate_limit import InMemoryRateLimiter, RateLimitPreset
from src.main import app


TEST_WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"test-signing-key-0123456789abcdef").decode()


class FakeNotifier:
    def __init__(self):
        self.sent = []
        self.error: Exception | None = None

    def send_order_confirmation(self, order_id, total, email, name, items):
        if self.error is not None:
            raise self.error
        self.sent.append(
            {
                "order_id": order_id,
                "total": total,
                "email": email,
                "name": name,
                "items": list(items),
            }
        )
        return True


# ---------------------
# DATABASE
# ---------------------

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def executed_statements(engine):
    statements = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", _record)
    yield statements
    event.remove(engine, "before_cursor_execute", _record)


@pytest.fixture
def seed_order(db_session):
    def _seed(
        order_id: str,
        user_id: str | None = "user-1",
        status: str = "pending",
        payment_status: str = "pending",
        email: str | None = "customer@example.com",
    ) -> Order:
        if user_id and db_session.get(Profile, user_id) is None:
            db_session.add(
                Profile(id=user_id, email=email, first_name="Thandi", last_name="Mokoena")
            )
        order = Order(
            id=order_id,
            user_id=user_id,
            status=status,
            payment_status=payment_status,
            total_amount=Decimal("150.00"),
            delivery_type="pickup",
        )
        db_session.add(order)
        db_session.flush()
        db_session.add(
            OrderItem(order_id=order_id, name="Flat White", quantity=2, price=Decimal("38.00"))
        )
        db_session.add(
            OrderItem(order_id=order_id, name="Toastie", quantity=1, price=Decimal("74.00"))
        )
        db_session.commit()
        return order

    return _seed


@pytest.fixture
def seed_hall_booking(db_session):
    def _seed(booking_id: str, status: str = "pending_payment") -> HallBooking:
        booking = HallBooking(
            id=booking_id,
            status=status,
            applicant_email="events@example.com",
            applicant_name="Sipho Ndlovu",
        )
        db_session.add(booking)
        db_session.commit()
        return booking

    return _seed


@pytest.fixture
def reload(db_session):
    def _reload(model, ident):
        db_session.expire_all()
        return db_session.get(model, ident)

    return _reload


# ---------------------
# APPLICATION
# ---------------------

@pytest.fixture
def settings():
    return WebhookSettings(webhook_secret=TEST_WEBHOOK_SECRET)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def rate_limiter():
    return InMemoryRateLimiter(
        presets={"webhook": RateLimitPreset(limit=1000, window_seconds=60)}
    )


@pytest.fixture
def client(session_factory, settings, notifier, rate_limiter):
    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    yield TestClient(app)

    app.dependency_overrides.clear()


# ---------------------
# WEBHOOK HELPERS
# ---------------------

@pytest.fixture
def make_event():
    def _make(
        event_type: str = "payment.succeeded",
        status: str | None = "succeeded",
        metadata: dict | None = None,
        event_id: str | None = None,
        **payload_extra,
    ) -> dict:
        payload = {
            "id": f"p_{uuid4().hex[:12]}",
            "amount": 15000,
            "currency": "ZAR",
            **payload_extra,
        }
        if status is not None:
            payload["status"] = status
        if metadata is not None:
            payload["metadata"] = metadata
        return {
            "id": event_id or f"evt_{uuid4().hex[:16]}",
            "type": event_type,
            "createdDate": "2026-10-19T08:00:00Z",
            "payload": payload,
        }

    return _make


@pytest.fixture
def signed_headers():
    def _headers(
        body: bytes,
        secret: str = TEST_WEBHOOK_SECRET,
        timestamp: int | None = None,
        webhook_id: str | None = None,
    ) -> dict:
        webhook_id = webhook_id or f"msg_{uuid4().hex}"
        ts = str(timestamp if timestamp is not None else int(time.time()))
        signature = compute_signature(secret, webhook_id, ts, body)
        return {
            "content-type": "application/json",
            "webhook-id": webhook_id,
            "webhook-timestamp": ts,
            "webhook-signature": f"v1,{signature}",
        }

    return _headers


@pytest.fixture
def send_event(client, signed_headers):
    def _send(event: dict, **header_options):
        body = json.dumps(event).encode("utf-8")
        return client.post("/webhook", content=body, headers=signed_headers(body, **header_options))

    return _send
