"""
Runner Ledger Service - commission debt and earnings per runner

Every posting locks the runner's balance row (SELECT ... FOR UPDATE) so two
errands approved at the same time for one runner serialize instead of losing
an update. Postings for different runners never contend.

Methods here flush but never commit: each posting is one step of a larger
unit of work (verify, repayment approval) that the caller commits or rolls
back as a whole.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errands.core.clock import utcnow, whole_days_between
from errands.core.config import settings
from errands.core.exceptions import ErrorCode, ExceedsBalance, NotFound, ValidationError
from errands.core.logging import get_logger
from errands.db.models.ledger_entry import LedgerEntryType, RunnerLedgerEntry
from errands.db.models.runner_balance import RunnerBalance, RunnerBalanceStatus
from errands.domain.services.fee_calculator import Amount, to_money

logger = get_logger(__name__)


@dataclass(frozen=True)
class PaymentStatus:
    status: str  # clear | active | reminder | due | overdue
    message: str
    urgency: str  # none | low | medium | high | critical
    days_elapsed: int = 0
    days_overdue: int = 0


def payment_status(ledger: Optional[RunnerBalance], now: datetime) -> PaymentStatus:
    """Where the runner stands in the repayment window. Pure."""
    if ledger is None or ledger.current_balance is None or ledger.current_balance <= 0:
        return PaymentStatus(status="clear", message="No outstanding balance", urgency="none")

    due_day = settings.ESCALATION_DUE_DAY
    days = whole_days_between(ledger.balance_started_at, now) if ledger.balance_started_at else 0

    if days < settings.ESCALATION_REMINDER_DAY:
        return PaymentStatus(
            status="active",
            message=f"Balance accumulating - payment due in {due_day - days} days",
            urgency="low",
            days_elapsed=days,
        )
    if days < due_day:
        return PaymentStatus(
            status="reminder",
            message=f"Payment reminder - balance due tomorrow ({due_day}-day limit)",
            urgency="medium",
            days_elapsed=days,
        )
    if days == due_day:
        return PaymentStatus(
            status="due",
            message=f"Payment due TODAY ({due_day}-day limit reached)",
            urgency="high",
            days_elapsed=days,
        )
    overdue = days - due_day
    return PaymentStatus(
        status="overdue",
        message=f"Balance overdue by {overdue} day(s) - immediate payment required",
        urgency="critical",
        days_elapsed=days,
        days_overdue=overdue,
    )


def _positive_amount(amount: Amount) -> Decimal:
    value = to_money(amount)
    if value <= 0:
        raise ValidationError(
            "Amount must be greater than zero",
            field="amount",
            error_code=ErrorCode.INVALID_AMOUNT,
        )
    return value


class RunnerLedgerService:
    """Postings against runner balances"""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def get_ledger(
        self, runner_id: int, for_update: bool = False
    ) -> Optional[RunnerBalance]:
        query = select(RunnerBalance).where(RunnerBalance.runner_id == runner_id)
        if for_update:
            # re-read under the lock; the identity map may hold a stale copy
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_ledger(
        self, runner_id: int, for_update: bool = False
    ) -> RunnerBalance:
        """Existing ledger, or a fresh zero ledger created race-free"""
        ledger = await self.get_ledger(runner_id, for_update=for_update)
        if ledger is not None:
            return ledger

        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            self.db.add(RunnerBalance(runner_id=runner_id))
            await self.db.flush()
            return await self.get_ledger(runner_id, for_update=for_update)

        # a concurrent first posting may insert the same row; the loser re-reads it
        await self.db.execute(
            insert(RunnerBalance)
            .values(
                runner_id=runner_id,
                current_balance=Decimal("0.00"),
                total_earned=Decimal("0.00"),
                total_paid=Decimal("0.00"),
                status=RunnerBalanceStatus.ACTIVE,
                reminder_sent=False,
                due_notice_sent=False,
                warning_sent=False,
            )
            .on_conflict_do_nothing(index_elements=["runner_id"])
        )
        logger.info("Runner ledger created", extra_data={"runner_id": runner_id})
        return await self.get_ledger(runner_id, for_update=for_update)

    async def debit_commission(
        self,
        runner_id: int,
        amount: Amount,
        memo: str = "Platform commission",
        errand_id: Optional[int] = None,
    ) -> RunnerLedgerEntry:
        """Add platform commission to the runner's debt; opens a cycle on 0 -> >0"""
        value = _positive_amount(amount)
        ledger = await self.get_or_create_ledger(runner_id, for_update=True)

        ledger.current_balance = Decimal(ledger.current_balance) + value
        if ledger.balance_started_at is None:
            ledger.balance_started_at = self.clock()

        entry = RunnerLedgerEntry(
            runner_id=runner_id,
            errand_id=errand_id,
            entry_type=LedgerEntryType.COMMISSION_DEBIT,
            amount=value,
            balance_after=ledger.current_balance,
            memo=memo,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Commission debited",
            extra_data={
                "runner_id": runner_id,
                "errand_id": errand_id,
                "amount": str(value),
                "balance_after": str(ledger.current_balance),
            },
        )
        return entry

    async def credit_earnings(
        self,
        runner_id: int,
        amount: Amount,
        memo: str = "Runner profit from errand",
        errand_id: Optional[int] = None,
    ) -> RunnerLedgerEntry:
        """Record runner profit; never touches current_balance"""
        value = _positive_amount(amount)
        ledger = await self.get_or_create_ledger(runner_id, for_update=True)

        ledger.total_earned = Decimal(ledger.total_earned) + value

        entry = RunnerLedgerEntry(
            runner_id=runner_id,
            errand_id=errand_id,
            entry_type=LedgerEntryType.EARNINGS_CREDIT,
            amount=value,
            balance_after=ledger.current_balance,
            memo=memo,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Earnings credited",
            extra_data={
                "runner_id": runner_id,
                "errand_id": errand_id,
                "amount": str(value),
                "total_earned": str(ledger.total_earned),
            },
        )
        return entry

    async def process_payment(
        self,
        runner_id: int,
        amount: Amount,
        balance_payment_id: Optional[int] = None,
    ) -> RunnerBalance:
        """
        Apply a repayment.

        Raises ExceedsBalance (balance untouched) when amount > current_balance.
        Reaching zero resets the debt cycle and every escalation flag.
        """
        value = _positive_amount(amount)
        ledger = await self.get_ledger(runner_id, for_update=True)
        if ledger is None:
            raise NotFound("Runner balance", runner_id)

        current = Decimal(ledger.current_balance)
        if value > current:
            raise ExceedsBalance(runner_id, value, current)

        ledger.current_balance = current - value
        ledger.total_paid = Decimal(ledger.total_paid) + value
        ledger.last_payment_date = self.clock()
        if ledger.current_balance <= 0:
            ledger.reset_cycle()

        self.db.add(RunnerLedgerEntry(
            runner_id=runner_id,
            balance_payment_id=balance_payment_id,
            entry_type=LedgerEntryType.BALANCE_PAYMENT,
            amount=-value,
            balance_after=ledger.current_balance,
            memo=f"Balance payment #{balance_payment_id}" if balance_payment_id else "Balance payment",
        ))
        await self.db.flush()

        logger.info(
            "Balance payment applied",
            extra_data={
                "runner_id": runner_id,
                "amount": str(value),
                "balance_after": str(ledger.current_balance),
                "cycle_cleared": ledger.balance_started_at is None,
            },
        )
        return ledger

    async def get_status(self, runner_id: int) -> tuple[Optional[RunnerBalance], PaymentStatus]:
        ledger = await self.get_ledger(runner_id)
        return ledger, payment_status(ledger, self.clock())

    async def list_outstanding(self) -> list[RunnerBalance]:
        """Ledgers with debt, oldest cycle first"""
        result = await self.db.execute(
            select(RunnerBalance)
            .where(RunnerBalance.current_balance > 0)
            .order_by(RunnerBalance.balance_started_at.asc(), RunnerBalance.runner_id)
        )
        return list(result.scalars().all())

    async def get_history(self, runner_id: int, limit: int = 20) -> list[RunnerLedgerEntry]:
        result = await self.db.execute(
            select(RunnerLedgerEntry)
            .where(RunnerLedgerEntry.runner_id == runner_id)
            .order_by(RunnerLedgerEntry.created_at.desc(), RunnerLedgerEntry.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
