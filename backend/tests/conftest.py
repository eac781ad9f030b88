"""
Shared fixtures for the reconciliation test suite.

Service, finder and API tests run against an in-memory SQLite database
built from the ORM metadata, so the unique and partial unique indexes
behave as they do in PostgreSQL.
"""

import os

# Must be set before config / database are imported
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BANK_FEED_WEBHOOK_SECRET"] = "bank-feed-test-secret"
os.environ["TOSS_WEBHOOK_SECRET"] = "toss-test-secret"
os.environ["OPEN_BANKING_WEBHOOK_SECRET"] = ""
os.environ["SENTRY_DSN"] = ""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config import get_settings

get_settings.cache_clear()

from database.connection import Base
from database.payment_models import OrderDB, PaymentStatus
from reconciliation.deposit_event import DepositEvent

TX_DATE = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_order(session_factory):
    """Insert an order in its own session and return it."""
    async def _make(
        total_amount: int = 50000,
        customer_name: str = "Kim Minsu",
        created_at: datetime = TX_DATE,
        order_number: str = None,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
    ) -> OrderDB:
        async with session_factory() as session:
            order = OrderDB(
                order_number=order_number,
                customer_name=customer_name,
                total_amount=total_amount,
                created_at=created_at,
                payment_status=payment_status,
            )
            session.add(order)
            await session.commit()
            return order
    return _make


@pytest.fixture
def make_event():
    """Build a canonical deposit event with overridable fields."""
    counter = {"n": 0}

    def _make(**overrides) -> DepositEvent:
        counter["n"] += 1
        fields = {
            "provider": "bank_feed",
            "external_id": f"TX-{counter['n']:04d}",
            "bank_code": "004",
            "bank_name": "KB Kookmin",
            "account_number": "123-456-7890",
            "depositor_name": "Kim Minsu",
            "amount": 50000,
            "transaction_date": TX_DATE,
            "memo": None,
            "raw_payload": {},
        }
        fields.update(overrides)
        return DepositEvent(**fields)
    return _make


def deposit_like(amount=50000, depositor_name="Kim Minsu", transaction_date=TX_DATE, **extra):
    """Lightweight deposit stand-in for pure scoring tests."""
    return SimpleNamespace(
        amount=amount,
        depositor_name=depositor_name,
        transaction_date=transaction_date,
        **extra
    )


def order_like(id="order-1", total_amount=50000, customer_name="Kim Minsu",
               created_at=TX_DATE, order_number=None):
    """Lightweight order stand-in for pure scoring tests."""
    return SimpleNamespace(
        id=id,
        total_amount=total_amount,
        customer_name=customer_name,
        created_at=created_at,
        order_number=order_number,
    )
