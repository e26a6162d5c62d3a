"""
Account Service - database-backed AccountStore, AdminDirectory and ErrandStore
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from errands.core.logging import get_logger
from errands.db.models.errand import Errand
from errands.db.models.user import User
from errands.domain.services.collaborators import ErrandAssignment

logger = get_logger(__name__)


class AccountService:
    """User lookups and bans"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def ban_user(self, user_id: int, reason: str, banned_at: datetime) -> bool:
        """
        Ban a user. Idempotent: an already-banned user keeps the original
        banned_at/ban_reason and False is returned.

        Flushes only; the caller owns the transaction.
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.is_banned == False)  # noqa: E712
            .values(is_banned=True, banned_at=banned_at, ban_reason=reason)
            .execution_options(synchronize_session="evaluate")
        )
        banned = result.rowcount == 1
        if banned:
            logger.warning(
                "User banned",
                extra_data={"user_id": user_id, "reason": reason},
            )
        return banned

    async def list_admins(self) -> list[int]:
        result = await self.db.execute(
            select(User.id).where(User.is_admin == True).order_by(User.id)  # noqa: E712
        )
        return list(result.scalars().all())


class ErrandLookupService:
    """Read-only view of errand assignments"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_assignment(self, errand_id: int) -> Optional[ErrandAssignment]:
        result = await self.db.execute(select(Errand).where(Errand.id == errand_id))
        errand = result.scalar_one_or_none()
        if errand is None:
            return None
        return ErrandAssignment(
            errand_id=errand.id,
            customer_id=errand.customer_id,
            runner_id=errand.runner_id,
            status=errand.status.value if errand.status else "",
        )
