"""
Shared fixtures: a temp-file SQLite database per test, fixed settings and a
fake payment processor.
"""
import os

os.environ.setdefault("TESTING", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from nulex.db import Base
from nulex.errors import PaymentProcessorError
from nulex.models import Task, User, WithdrawalPortal
from nulex.services.korapay_service import sign_payload
from nulex.services.settings_service import StaticSettings

WEBHOOK_SECRET = "sk_test_webhook_secret"

DEFAULT_TEST_SETTINGS = {
    "knight_package_price": "4500",
    "elite_package_price": "7500",
    "welcome_bonus_amount": "1000",
    "knight_referral_commission": "1500",
    "elite_referral_commission": "3500",
    "affiliate_min_withdrawal": "1000",
    "task_min_withdrawal": "15000",
    "withdrawal_processing_fee": "1.5",
}


class FakeProcessor:
    """In-memory stand-in for the Korapay client."""

    def __init__(self, secret_key=WEBHOOK_SECRET):
        self.secret_key = secret_key
        self.charges = {}
        self.calls = []
        self.failures = {}
        self.transfers = []

    def fail(self, method, message):
        self.failures[method] = message

    def _record(self, method, **kwargs):
        self.calls.append((method, kwargs))
        if method in self.failures:
            raise PaymentProcessorError(self.failures[method])

    def count(self, method):
        return sum(1 for name, _ in self.calls if name == method)

    async def create_charge(self, *, amount, reference, customer, metadata=None,
                            notification_url=None, redirect_url=None):
        self._record("create_charge", amount=amount, reference=reference, customer=customer)
        external = f"KPY-{reference}"
        self.charges[external] = "processing"
        return {
            "reference": external,
            "checkout_url": f"https://checkout.korapay.test/{external}",
            "access_code": "ACCESS-123",
        }

    async def get_charge(self, reference):
        self._record("get_charge", reference=reference)
        return {"status": self.charges.get(reference, "processing"), "reference": reference}

    async def validate_bank_account(self, *, account_number, bank_code):
        self._record("validate_bank_account", account_number=account_number, bank_code=bank_code)
        return {"account_name": "ADA OBI", "bank_name": "Test Bank"}

    async def create_transfer_recipient(self, *, name, account_number, bank_code):
        self._record("create_transfer_recipient", name=name, account_number=account_number)
        return {"recipient_code": f"RCP_{account_number}"}

    async def initiate_transfer(self, *, amount, recipient_code, reference, reason="Withdrawal"):
        self._record("initiate_transfer", amount=amount, recipient_code=recipient_code)
        self.transfers.append((Decimal(amount), recipient_code))
        return {"transfer_code": f"TRF_CODE_{len(self.transfers)}"}

    def verify_webhook_signature(self, data, signature):
        return bool(signature) and signature == sign_payload(data, self.secret_key)


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    db_path = tmp_path / "nulex_tests.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def async_session_maker(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(async_session_maker):
    async with async_session_maker() as session:
        yield session


@pytest.fixture
def settings():
    return StaticSettings(DEFAULT_TEST_SETTINGS)


@pytest.fixture
def processor():
    return FakeProcessor()


async def seed_user(session, username, **fields):
    user = User(username=username, email=f"{username}@example.com", **fields)
    session.add(user)
    await session.commit()
    return user


async def seed_task(session, **fields):
    values = {
        "title": "Watch the promo video",
        "reward": Decimal("200.00"),
        "max_completions": 10,
        "current_completions": 0,
        "is_active": True,
    }
    values.update(fields)
    task = Task(**values)
    session.add(task)
    await session.commit()
    return task


async def open_portal(session, **fields):
    portal = WithdrawalPortal(is_open=True, **fields)
    session.add(portal)
    await session.commit()
    return portal


async def fetch_user(session_maker, user_id):
    """Read a user through a fresh session so committed values are observed."""
    async with session_maker() as fresh:
        result = await fresh.execute(select(User).where(User.id == user_id))
        return result.scalar_one()
