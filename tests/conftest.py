"""Shared fixtures: in-memory SQLite schema, factories, tokens and a fake payment provider."""

import os

# must be set before anything imports bazart.core.config
os.environ["POSTGRES_DSN"] = "sqlite+pysqlite:///:memory:"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["RECONCILE_INTERVAL_SECONDS"] = "0"
os.environ["JWT_SECRET"] = "test-secret"

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bazart.api.deps import get_db, get_payment_client
from bazart.core.auth import Identity
from bazart.core.config import settings
from bazart.core.permissions import capabilities_for
from bazart.db.models import Product, User
from bazart.db.session import Base
from bazart.errors import PaymentProviderError
from bazart.main import app
from bazart.services.payment_client import PaymentSession, SessionStatus


class FakePaymentClient:
    def __init__(self):
        self.created = []
        self.statuses = {}
        self.fail_create = False
        self.fail_verify = False

    def create_session(self, order_id, amount_cents, customer_email, expires_at=None):
        if self.fail_create:
            raise PaymentProviderError("Payment provider unavailable")
        session = PaymentSession(session_id=f"cs_test_{order_id}", url=f"https://pay.test/cs_test_{order_id}")
        self.created.append((order_id, amount_cents, customer_email))
        return session

    def verify_session(self, session_id):
        if self.fail_verify:
            raise PaymentProviderError("Payment provider unavailable")
        return self.statuses.get(
            session_id, SessionStatus(session_id=session_id, paid=False, expired=False, order_id=None)
        )

    def mark_paid(self, session_id, order_id):
        self.statuses[session_id] = SessionStatus(session_id=session_id, paid=True, expired=False, order_id=order_id)

    def mark_expired(self, session_id, order_id):
        self.statuses[session_id] = SessionStatus(session_id=session_id, paid=False, expired=True, order_id=order_id)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def payments():
    return FakePaymentClient()


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(role="customer", email=None, full_name="", address=""):
        counter["n"] += 1
        user = User(
            email=email or f"{role}{counter['n']}@bazart.test",
            full_name=full_name or f"{role.title()} {counter['n']}",
            address=address,
            role=role,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def make_product(db):
    def _make(artisan, price_cents=1000, qty=10, name=None, deleted=False):
        product = Product(
            name=name or f"Prodotto {price_cents}",
            price_cents=price_cents,
            available_qty=qty,
            artisan_id=artisan.id if artisan is not None else None,
            deleted=deleted,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture()
def customer(make_user):
    return make_user("customer", email="cliente@bazart.test", full_name="Giulia Rossi", address="Via Roma 1")


@pytest.fixture()
def artisan(make_user):
    return make_user("artisan", email="ceramiche@bazart.test")


@pytest.fixture()
def other_artisan(make_user):
    return make_user("artisan", email="legno@bazart.test")


@pytest.fixture()
def admin(make_user):
    return make_user("admin", email="admin@bazart.test")


def identity_for(user) -> Identity:
    return Identity(user_id=user.id, email=user.email, role=user.role, capabilities=capabilities_for(user.role))


def token_for(user, token_type="access") -> str:
    payload = {
        "sub": user.email,
        "uid": user.id,
        "role": user.role,
        "type": token_type,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth(user) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture()
def client(db, payments):
    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_payment_client] = lambda: payments
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
