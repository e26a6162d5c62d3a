"""
Escalation Service - daily sweep over unpaid runner balances

For each ledger with debt: lock the row, evaluate the escalation policy,
write the notice (or ban) and the updated flags, commit. One transaction per
runner, so a failure for one runner rolls back only that runner and the next
run retries it.

Overlapping runs are kept apart twice: a Redis run lock skips the whole cycle
when another instance holds it, and rows are locked with SKIP LOCKED so a
runner being processed elsewhere is skipped rather than double-notified.
"""
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errands.core.clock import utcnow
from errands.core.config import settings
from errands.core.logging import get_logger, log_async_operation
from errands.db.models.runner_balance import RunnerBalance
from errands.domain.services.account_service import AccountService
from errands.domain.services.collaborators import AccountStore, NotificationKind, NotificationSink
from errands.domain.services.escalation_policy import (
    EscalationAction,
    EscalationDecision,
    EscalationThresholds,
    apply_decision,
    evaluate,
)
from errands.domain.services.notification_service import NotificationService

logger = get_logger(__name__)

RUN_LOCK_KEY = "errands:escalation:run_lock"

# delete the run lock only while it still holds our token
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_NOTICE_KIND = {
    EscalationAction.REMINDER: NotificationKind.BALANCE_REMINDER,
    EscalationAction.PAYMENT_DUE_TODAY: NotificationKind.BALANCE_PAYMENT_DUE,
    EscalationAction.WARNING: NotificationKind.BALANCE_WARNING,
    EscalationAction.CRITICAL: NotificationKind.BALANCE_CRITICAL,
}


@dataclass
class EscalationReport:
    processed: int = 0
    reminders: int = 0
    due_notices: int = 0
    warnings: int = 0
    critical: int = 0
    banned: int = 0
    failed: int = 0
    skipped: int = 0
    run_skipped: bool = False

    def record(self, action: EscalationAction) -> None:
        field = {
            EscalationAction.REMINDER: "reminders",
            EscalationAction.PAYMENT_DUE_TODAY: "due_notices",
            EscalationAction.WARNING: "warnings",
            EscalationAction.CRITICAL: "critical",
            EscalationAction.BAN: "banned",
        }.get(action)
        if field:
            setattr(self, field, getattr(self, field) + 1)

    def to_dict(self) -> dict:
        return asdict(self)


def ban_reason(days_past_due: int) -> str:
    return f"Overdue balance payment - {days_past_due} days past due"


class EscalationService:
    """Applies the escalation policy to every runner with debt"""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationSink] = None,
        accounts: Optional[AccountStore] = None,
        thresholds: Optional[EscalationThresholds] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.notifier = notifier or NotificationService(db)
        self.accounts = accounts or AccountService(db)
        self.thresholds = thresholds or EscalationThresholds.from_settings()
        self.clock = clock

    async def _acquire_run_lock(self) -> Optional[str]:
        """Returns the lock token, "" when Redis is unreachable, None when another run holds it"""
        from errands.core.redis_client import get_redis

        token = uuid.uuid4().hex
        try:
            redis = await get_redis()
            acquired = await redis.set(
                RUN_LOCK_KEY, token, nx=True, ex=settings.ESCALATION_LOCK_TTL_SECONDS
            )
        except Exception as e:
            # row locks still prevent double processing; run without the global lock
            logger.warning(
                "Escalation run lock unavailable, continuing with row locks only",
                extra_data={"error": str(e)},
            )
            return ""
        return token if acquired else None

    async def _release_run_lock(self, token: str) -> None:
        from errands.core.redis_client import get_redis

        if not token:
            return
        try:
            redis = await get_redis()
            await redis.eval(RELEASE_LOCK_SCRIPT, 1, RUN_LOCK_KEY, token)
        except Exception as e:
            logger.warning(
                "Failed to release escalation run lock",
                extra_data={"error": str(e)},
            )

    @log_async_operation("balance_escalation")
    async def run_once(self, now: Optional[datetime] = None) -> EscalationReport:
        report = EscalationReport()
        now = now or self.clock()

        token = await self._acquire_run_lock()
        if token is None:
            logger.info("Escalation run already in progress, skipping cycle")
            report.run_skipped = True
            return report

        try:
            result = await self.db.execute(
                select(RunnerBalance.runner_id)
                .where(
                    RunnerBalance.current_balance > 0,
                    RunnerBalance.balance_started_at.is_not(None),
                )
                .order_by(RunnerBalance.balance_started_at.asc())
            )
            runner_ids = list(result.scalars().all())
            # release the read transaction before per-runner transactions begin
            await self.db.commit()

            for runner_id in runner_ids:
                try:
                    decision = await self.process_runner(runner_id, now)
                except Exception as e:
                    logger.error(
                        "Balance escalation failed for runner",
                        extra_data={"runner_id": runner_id, "error": str(e)},
                        exc_info=True,
                    )
                    await self.db.rollback()
                    report.failed += 1
                    continue

                if decision is None:
                    report.skipped += 1
                    continue
                report.processed += 1
                report.record(decision.action)
        finally:
            await self._release_run_lock(token)

        logger.info("Balance escalation finished", extra_data=report.to_dict())
        return report

    async def process_runner(self, runner_id: int, now: datetime) -> Optional[EscalationDecision]:
        """
        Evaluate and apply one runner's escalation in a single transaction.

        Returns None when the row is locked by another worker or no longer has debt.
        """
        result = await self.db.execute(
            select(RunnerBalance)
            .where(RunnerBalance.runner_id == runner_id)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        ledger = result.scalar_one_or_none()
        if ledger is None or ledger.current_balance <= 0:
            await self.db.commit()
            return None

        decision = evaluate(ledger, now, self.thresholds)
        if decision.action == EscalationAction.NONE:
            await self.db.commit()
            return decision

        balance = Decimal(ledger.current_balance)
        apply_decision(ledger, decision)

        if decision.action == EscalationAction.BAN:
            days_past_due = decision.days_overdue
            await self.accounts.ban_user(runner_id, ban_reason(days_past_due), now)
            await self.notifier.notify(
                runner_id,
                NotificationKind.ACCOUNT_BANNED,
                {"balance": balance, "days_past_due": days_past_due},
                ttl=timedelta(days=settings.BAN_NOTIFICATION_TTL_DAYS),
            )
        else:
            ttl_days = (
                settings.CRITICAL_NOTIFICATION_TTL_DAYS
                if decision.action == EscalationAction.CRITICAL
                else settings.BALANCE_NOTIFICATION_TTL_DAYS
            )
            await self.notifier.notify(
                runner_id,
                _NOTICE_KIND[decision.action],
                {
                    "balance": balance,
                    "days_elapsed": decision.days_elapsed,
                    "days_overdue": decision.days_overdue,
                    "due_day": self.thresholds.due_day,
                    "days_until_due": max(self.thresholds.due_day - decision.days_elapsed, 0),
                },
                ttl=timedelta(days=ttl_days),
            )

        await self.db.commit()
        logger.info(
            "Balance escalation applied",
            extra_data={
                "runner_id": runner_id,
                "action": decision.action.value,
                "days_elapsed": decision.days_elapsed,
                "balance": str(balance),
            },
        )
        return decision
