"""
Root test configuration and fixtures.

Each test gets its own SQLite database file so that several sessions
(standard and elevated) can be open against it, as in production.
"""

import os
import uuid
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Optional
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine

# Set test environment
os.environ.setdefault("ENV", "test")

from pharmacare.auth.passwords import hash_password
from pharmacare.config.settings import AppSettings
from pharmacare.database.session import capabilities_for_engine
from pharmacare.db_base import Base
from pharmacare.integrations.chapa.client import ChapaClient, CheckoutSession, VerificationResult
from pharmacare.models import Company, User, CompanyUser, PaymentRecord, SubscriptionEvent

# 2026-01-15 12:00 UTC
FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

TEST_PASSWORD = "correct-horse"
TEST_BCRYPT_ROUNDS = 4


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def db_engine(tmp_path):
    """Create a fresh SQLite database with all tables."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pharmacare.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(db_engine):
    """Store capabilities with both levels bound to the test database."""
    return capabilities_for_engine(db_engine)


@pytest.fixture
def settings():
    return AppSettings(
        env="test",
        jwt_secret="test-jwt-secret",
        chapa_secret_key="CHASECK_TEST-key",
        frontend_url="http://app.test",
        backend_url="http://api.test",
    )


@pytest.fixture
def gateway():
    """Chapa client double. Async methods are AsyncMocks."""
    client = MagicMock(spec=ChapaClient)
    client.initialize_transaction.return_value = CheckoutSession(
        checkout_url="https://checkout.chapa.co/pay/abc",
        raw={"status": "success", "data": {"checkout_url": "https://checkout.chapa.co/pay/abc"}},
    )
    client.verify_transaction.return_value = VerificationResult(
        tx_ref="unused", succeeded=False, raw={"status": "success", "data": {"status": "pending"}}
    )
    return client


@pytest.fixture
def password_hash():
    return hash_password(TEST_PASSWORD, rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def factory(store, password_hash):
    """Insert rows directly into the test database."""
    return RowFactory(store, password_hash)


class RowFactory:
    """Creates test rows with sensible defaults."""

    def __init__(self, store, password_hash: str):
        self.store = store
        self.password_hash = password_hash

    def _insert(self, row):
        with self.store.elevated() as session:
            session.add(row)
            session.commit()
            return row

    def company(self, **overrides) -> Company:
        values = {
            "id": str(uuid.uuid4()),
            "company_name": f"Pharmacy {uuid.uuid4().hex[:6]}",
            "subscription_status": "inactive",
        }
        values.update(overrides)
        return self._insert(Company(**values))

    def user(self, email: str, **overrides) -> User:
        values = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password_hash": self.password_hash,
            "full_name": "Test User",
            "role": "pharmacist",
            "account_type": "individual",
            "approved": True,
            "subscription_status": "inactive",
        }
        values.update(overrides)
        return self._insert(User(**values))

    def company_user(self, email: str, company_id: Optional[str], **overrides) -> CompanyUser:
        values = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password_hash": self.password_hash,
            "full_name": "Company Member",
            "role": "company_user",
            "account_type": "company_user",
            "approved": True,
            "company_id": company_id,
            "subscription_status": "inactive",
        }
        values.update(overrides)
        return self._insert(CompanyUser(**values))

    def payment(self, tx_ref: str, email: str, plan_id: str = "individual_monthly", **overrides) -> PaymentRecord:
        values = {
            "tx_ref": tx_ref,
            "principal_email": email,
            "plan_id": plan_id,
            "plan_name": plan_id.replace("_", " ").title(),
            "amount": Decimal("300"),
            "currency": "ETB",
            "status": "pending",
            "account_type": "individual",
            "created_at": FIXED_NOW - timedelta(hours=1),
            "updated_at": FIXED_NOW - timedelta(hours=1),
        }
        values.update(overrides)
        return self._insert(PaymentRecord(**values))

    def subscription_event(self, tx_ref: str, email: str, end_date: datetime, **overrides) -> SubscriptionEvent:
        values = {
            "tx_ref": tx_ref,
            "principal_email": email,
            "plan_id": "company_basic",
            "status": "active",
            "start_date": end_date - timedelta(days=30),
            "end_date": end_date,
        }
        values.update(overrides)
        return self._insert(SubscriptionEvent(**values))

    def get(self, model, **filters):
        with self.store.standard() as session:
            return session.query(model).filter_by(**filters).first()

    def count(self, model, **filters) -> int:
        with self.store.standard() as session:
            return session.query(model).filter_by(**filters).count()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: tests that exercise the HTTP surface end to end")
