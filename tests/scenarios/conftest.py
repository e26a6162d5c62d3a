"""
Fixtures for end-to-end scenarios.

Provides:
- A controllable clock shared by every service in a scenario
- Shortcuts for submitting and approving an errand payment
- DB assertions for the runner ledger and notifications
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from errands.db.models.notification import Notification
from errands.db.models.runner_balance import RunnerBalance

PROOF = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQ=="


class ScenarioClock:
    """Fixed time that a scenario moves forward explicitly"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> ScenarioClock:
    return ScenarioClock(datetime(2026, 2, 2, 8, 0, 0))


@pytest.fixture
def settle_errand(db_session, clock):
    """Runner submits, customer approves; returns the approved payment"""
    from errands.domain.services.errand_payment_service import ErrandPaymentService

    async def _settle(errand, amount: str = "100.00"):
        service = ErrandPaymentService(db_session, clock=clock)
        await service.submit(errand.runner_id, errand.id, amount, PROOF)
        return await service.verify(errand.customer_id, errand.id, verified=True)

    return _settle


@pytest.fixture
def ledger_state(db_session):
    """Fresh read of a runner's ledger row"""
    async def _state(runner_id: int) -> RunnerBalance:
        result = await db_session.execute(
            select(RunnerBalance)
            .where(RunnerBalance.runner_id == runner_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    return _state


@pytest.fixture
def notification_kinds(db_session):
    """Notification types a user received, oldest first"""
    async def _kinds(user_id: int, prefix: str = "") -> list[str]:
        result = await db_session.execute(
            select(Notification.type)
            .where(Notification.user_id == user_id)
            .order_by(Notification.id)
        )
        return [kind for kind in result.scalars().all() if kind.startswith(prefix)]

    return _kinds
