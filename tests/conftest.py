"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- An in-memory Redis replacement
- Test data factories (users, errands, payments, balances)
- Bearer tokens for API tests
"""
# JWT_SECRET_KEY must exist before the app is imported; the settings validator requires it when DEBUG=False
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import pytest
from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import patch

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from errands.core.auth import create_access_token
from errands.db.database import Base, get_db
from errands.db.models.user import User
from errands.db.models.errand import Errand, ErrandStatus
from errands.db.models.errand_payment import ErrandPaymentTransaction, ErrandPaymentStatus, PaymentMethod
from errands.db.models.runner_balance import RunnerBalance, RunnerBalanceStatus
from errands.domain.services.fee_calculator import split_fee
from errands.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine):
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating test users"""
    counter = {"n": 0}

    async def _create_user(
        name: str = "Test User",
        email: str | None = None,
        is_admin: bool = False,
        is_banned: bool = False,
    ) -> User:
        counter["n"] += 1
        user = User(
            name=name,
            email=email or f"user{counter['n']}@campus.test",
            is_admin=is_admin,
            is_banned=is_banned,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def errand_factory(db_session: AsyncSession):
    """Factory for creating test errands"""
    async def _create_errand(
        customer_id: int,
        runner_id: int | None = None,
        status: ErrandStatus = ErrandStatus.ACCEPTED,
        title: str = "Buy snacks from the canteen",
    ) -> Errand:
        errand = Errand(
            customer_id=customer_id,
            runner_id=runner_id,
            status=status,
            title=title,
        )
        db_session.add(errand)
        await db_session.commit()
        await db_session.refresh(errand)
        return errand

    return _create_errand


@pytest.fixture
def errand_payment_factory(db_session: AsyncSession):
    """Factory for payment rows in any status, fees split the normal way"""
    async def _create_payment(
        errand: Errand,
        original_amount: str = "100.00",
        status: ErrandPaymentStatus = ErrandPaymentStatus.PENDING,
        payment_method: PaymentMethod = PaymentMethod.GCASH,
        verified_at: datetime | None = None,
    ) -> ErrandPaymentTransaction:
        fees = split_fee(original_amount)
        payment = ErrandPaymentTransaction(
            errand_id=errand.id,
            runner_id=errand.runner_id,
            customer_id=errand.customer_id,
            original_amount=fees.original_amount,
            service_fee=fees.service_fee,
            runner_earnings=fees.runner_earnings,
            platform_commission=fees.platform_commission,
            total_amount=fees.total_amount,
            proof_of_purchase="data:image/png;base64,iVBORw0KGgo=",
            payment_method=payment_method,
            status=status,
            payment_verified=status != ErrandPaymentStatus.PENDING,
            verified_at=verified_at,
        )
        db_session.add(payment)
        await db_session.commit()
        await db_session.refresh(payment)
        return payment

    return _create_payment


@pytest.fixture
def runner_balance_factory(db_session: AsyncSession):
    """Factory for runner ledgers"""
    async def _create_balance(
        runner_id: int,
        current_balance: str = "0.00",
        balance_started_at: datetime | None = None,
        status: RunnerBalanceStatus = RunnerBalanceStatus.ACTIVE,
        total_earned: str = "0.00",
        reminder_sent: bool = False,
        due_notice_sent: bool = False,
        warning_sent: bool = False,
    ) -> RunnerBalance:
        ledger = RunnerBalance(
            runner_id=runner_id,
            current_balance=Decimal(current_balance),
            total_earned=Decimal(total_earned),
            total_paid=Decimal("0.00"),
            balance_started_at=balance_started_at,
            status=status,
            reminder_sent=reminder_sent,
            due_notice_sent=due_notice_sent,
            warning_sent=warning_sent,
        )
        db_session.add(ledger)
        await db_session.commit()
        await db_session.refresh(ledger)
        return ledger

    return _create_balance


# ============================================================================
# Sample Test Data
# ============================================================================

@pytest.fixture
async def customer(user_factory) -> User:
    return await user_factory(name="Carla Customer")


@pytest.fixture
async def runner(user_factory) -> User:
    return await user_factory(name="Rico Runner")


@pytest.fixture
async def admin(user_factory) -> User:
    return await user_factory(name="Ada Admin", is_admin=True)


@pytest.fixture
async def accepted_errand(errand_factory, customer, runner) -> Errand:
    """An errand the runner has accepted and not yet completed"""
    return await errand_factory(customer_id=customer.id, runner_id=runner.id)


@pytest.fixture
def auth_headers():
    """Bearer header for a user"""
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


class FakeRedis:
    """In-memory Redis replacement with the subset of commands the app uses."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        """SET with NX (only when missing) and EX (expiry in seconds)"""
        if nx and key in self._store:
            return None
        self._store[key] = value
        if ex is not None:
            self._ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._store.pop(key, None)
            self._ttls.pop(key, None)

    async def eval(self, script: str, numkeys: int, *keys_and_args: str) -> int:
        """Only the run-lock compare-and-delete script is supported"""
        from errands.domain.services.escalation_service import RELEASE_LOCK_SCRIPT

        if script != RELEASE_LOCK_SCRIPT:
            raise NotImplementedError("FakeRedis.eval supports the run-lock release script only")
        key, token = keys_and_args[0], keys_and_args[numkeys]
        if self._store.get(key) != token:
            return 0
        await self.delete(key)
        return 1

    async def aclose(self) -> None:
        self._store.clear()
        self._ttls.clear()


@pytest.fixture(autouse=True)
def fake_redis():
    """Replace get_redis with FakeRedis in every test."""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    with patch("errands.core.redis_client.get_redis", _get_fake_redis):
        yield _fake
