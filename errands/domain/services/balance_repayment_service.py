"""
Balance Repayment Service - runner repayments and their admin review

A runner pays off the whole outstanding balance at once; the amount is
snapshotted at submission. Approval applies the repayment to the ledger in
the same transaction as the status change.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errands.core.clock import utcnow
from errands.core.config import settings
from errands.core.exceptions import (
    AlreadyProcessed,
    ErrorCode,
    InvalidState,
    NotFound,
    Unauthorized,
    ValidationError,
)
from errands.core.logging import get_logger
from errands.db.models.balance_payment import (
    BalancePaymentMethod,
    BalancePaymentStatus,
    BalancePaymentTransaction,
)
from errands.db.models.runner_balance import RunnerBalance
from errands.domain.services.account_service import AccountService
from errands.domain.services.collaborators import AdminDirectory, NotificationKind, NotificationSink
from errands.domain.services.errand_payment_service import parse_method, parse_proof
from errands.domain.services.notification_service import NotificationService, notify_after_commit
from errands.domain.services.runner_ledger_service import RunnerLedgerService

logger = get_logger(__name__)


def gcash_info() -> dict[str, str]:
    """Platform account runners pay their balance into"""
    return {
        "gcash_number": settings.GCASH_NUMBER,
        "account_name": settings.GCASH_ACCOUNT_NAME,
    }


class BalanceRepaymentService:
    """Runner repayment submissions and admin decisions"""

    def __init__(
        self,
        db: AsyncSession,
        admins: Optional[AdminDirectory] = None,
        notifier: Optional[NotificationSink] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.admins = admins or AccountService(db)
        self.notifier = notifier or NotificationService(db)
        self.clock = clock
        self.ledger = RunnerLedgerService(db, clock=clock)

    async def _ensure_admin(self, admin_id: int) -> None:
        if admin_id not in await self.admins.list_admins():
            raise Unauthorized("Admin access required")

    async def _get_pending_for_update(self, transaction_id: int) -> BalancePaymentTransaction:
        result = await self.db.execute(
            select(BalancePaymentTransaction)
            .where(BalancePaymentTransaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            await self.db.rollback()
            raise NotFound("Balance payment", transaction_id)
        if transaction.status != BalancePaymentStatus.PENDING:
            current_state = transaction.status.value
            await self.db.rollback()
            raise InvalidState(
                "Balance payment has already been reviewed",
                current_state=current_state,
            )
        return transaction

    async def get_pending_for_runner(self, runner_id: int) -> Optional[BalancePaymentTransaction]:
        result = await self.db.execute(
            select(BalancePaymentTransaction)
            .where(
                BalancePaymentTransaction.runner_id == runner_id,
                BalancePaymentTransaction.status == BalancePaymentStatus.PENDING,
            )
            .order_by(BalancePaymentTransaction.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def submit(
        self,
        runner_id: int,
        proof_of_payment: str,
        payment_method: str = BalancePaymentMethod.GCASH.value,
        notes: Optional[str] = None,
    ) -> BalancePaymentTransaction:
        """Submit a repayment of the full current balance for admin review"""
        proof = parse_proof(proof_of_payment, settings.MAX_BALANCE_PROOF_SIZE, "proof_of_payment")
        method = parse_method(payment_method, BalancePaymentMethod)
        if notes is not None and len(notes) > 500:
            raise ValidationError("Notes can be at most 500 characters", field="notes")

        # the runner's ledger row serializes concurrent submissions
        ledger = await self.ledger.get_ledger(runner_id, for_update=True)
        if ledger is None or Decimal(ledger.current_balance) <= 0:
            await self.db.rollback()
            raise InvalidState(
                "No outstanding balance to pay",
                error_code=ErrorCode.NO_OUTSTANDING_BALANCE,
            )

        pending = await self.get_pending_for_runner(runner_id)
        if pending is not None:
            pending_id = pending.id
            await self.db.rollback()
            raise AlreadyProcessed(
                "You already have a pending balance payment awaiting approval",
                details={"transaction_id": pending_id},
            )

        amount = Decimal(ledger.current_balance)
        transaction = BalancePaymentTransaction(
            runner_id=runner_id,
            amount=amount,
            proof_of_payment=proof,
            payment_method=method,
            status=BalancePaymentStatus.PENDING,
            notes=notes,
        )
        self.db.add(transaction)
        await self.db.commit()

        logger.info(
            "Balance payment submitted",
            extra_data={
                "transaction_id": transaction.id,
                "runner_id": runner_id,
                "amount": str(amount),
            },
        )

        ttl = timedelta(days=settings.BALANCE_NOTIFICATION_TTL_DAYS)
        payload = {"transaction_id": transaction.id, "runner_id": runner_id, "amount": amount}
        await notify_after_commit(
            self.db, self.notifier, runner_id,
            NotificationKind.BALANCE_PAYMENT_SUBMITTED, payload, ttl=ttl,
        )
        for admin_id in await self.admins.list_admins():
            await notify_after_commit(
                self.db, self.notifier, admin_id,
                NotificationKind.BALANCE_PAYMENT_SUBMITTED, payload, ttl=ttl,
            )

        await self.db.refresh(transaction)
        return transaction

    async def approve(
        self,
        admin_id: int,
        transaction_id: int,
        notes: Optional[str] = None,
    ) -> tuple[BalancePaymentTransaction, RunnerBalance]:
        """Approve a pending repayment and apply it to the runner's balance"""
        await self._ensure_admin(admin_id)
        transaction = await self._get_pending_for_update(transaction_id)

        try:
            transaction.status = BalancePaymentStatus.APPROVED
            transaction.approved_by = admin_id
            transaction.approved_at = self.clock()
            if notes is not None:
                transaction.notes = notes
            ledger = await self.ledger.process_payment(
                transaction.runner_id,
                transaction.amount,
                balance_payment_id=transaction.id,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Balance payment approved",
            extra_data={
                "transaction_id": transaction.id,
                "runner_id": transaction.runner_id,
                "admin_id": admin_id,
                "amount": str(transaction.amount),
                "balance_after": str(ledger.current_balance),
            },
        )

        await notify_after_commit(
            self.db,
            self.notifier,
            transaction.runner_id,
            NotificationKind.BALANCE_PAYMENT_APPROVED,
            {
                "transaction_id": transaction.id,
                "amount": Decimal(transaction.amount),
                "balance": Decimal(ledger.current_balance),
            },
            ttl=timedelta(days=settings.BALANCE_NOTIFICATION_TTL_DAYS),
        )
        await self.db.refresh(transaction)
        await self.db.refresh(ledger)
        return transaction, ledger

    async def reject(
        self,
        admin_id: int,
        transaction_id: int,
        reason: str,
    ) -> BalancePaymentTransaction:
        """Reject a pending repayment; the runner may submit again"""
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required", field="reason")
        if len(reason) > 500:
            raise ValidationError("Reason can be at most 500 characters", field="reason")

        await self._ensure_admin(admin_id)
        transaction = await self._get_pending_for_update(transaction_id)

        transaction.status = BalancePaymentStatus.REJECTED
        transaction.approved_by = admin_id
        transaction.rejection_reason = reason
        await self.db.commit()

        logger.info(
            "Balance payment rejected",
            extra_data={
                "transaction_id": transaction.id,
                "runner_id": transaction.runner_id,
                "admin_id": admin_id,
            },
        )

        await notify_after_commit(
            self.db,
            self.notifier,
            transaction.runner_id,
            NotificationKind.BALANCE_PAYMENT_REJECTED,
            {
                "transaction_id": transaction.id,
                "amount": Decimal(transaction.amount),
                "reason": reason,
            },
            ttl=timedelta(days=settings.BALANCE_NOTIFICATION_TTL_DAYS),
        )
        await self.db.refresh(transaction)
        return transaction

    async def list_pending(self) -> list[BalancePaymentTransaction]:
        result = await self.db.execute(
            select(BalancePaymentTransaction)
            .where(BalancePaymentTransaction.status == BalancePaymentStatus.PENDING)
            .order_by(BalancePaymentTransaction.created_at.asc(), BalancePaymentTransaction.id.asc())
        )
        return list(result.scalars().all())

    async def list_for_runner(self, runner_id: int, limit: int = 50) -> list[BalancePaymentTransaction]:
        result = await self.db.execute(
            select(BalancePaymentTransaction)
            .where(BalancePaymentTransaction.runner_id == runner_id)
            .order_by(BalancePaymentTransaction.created_at.desc(), BalancePaymentTransaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
