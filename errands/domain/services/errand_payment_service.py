"""
Errand Payment Service - runner payment submission and customer verification

    runner submits spend + proof  -> pending
    customer verifies             -> approved, ledger posted (earnings + commission)
    customer rejects              -> rejected, runner may resubmit

Customer verification is the only approval gate. The legacy
customer_verified status is read as approved and can be normalized with
normalize_legacy_statuses(); nothing here writes it.
"""
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errands.core.clock import utcnow
from errands.core.config import settings
from errands.core.exceptions import (
    AlreadyProcessed,
    ErrorCode,
    InvalidState,
    NotAssigned,
    NotFound,
    Unauthorized,
    ValidationError,
)
from errands.core.logging import get_logger
from errands.db.models.errand import ErrandStatus
from errands.db.models.errand_payment import (
    ACTIVE_PAYMENT_STATUSES,
    REPLACEABLE_PAYMENT_STATUSES,
    ErrandPaymentStatus,
    ErrandPaymentTransaction,
    PaymentMethod,
)
from errands.domain.services.account_service import ErrandLookupService
from errands.domain.services.collaborators import (
    ErrandAssignment,
    ErrandStore,
    NotificationKind,
    NotificationSink,
)
from errands.domain.services.fee_calculator import split_fee
from errands.domain.services.notification_service import NotificationService, notify_after_commit
from errands.domain.services.runner_ledger_service import RunnerLedgerService

logger = get_logger(__name__)

DEFAULT_REJECTION_REASON = "Customer rejected the payment amount"


def parse_amount(value) -> Decimal:
    """Validate an errand spend: a number within the configured range, at most 2 decimals"""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Amount must be a number", field="original_amount") from None
    if not amount.is_finite():
        raise ValidationError("Amount must be a number", field="original_amount")
    if amount.as_tuple().exponent < -2:
        raise ValidationError("Amount can have at most 2 decimal places", field="original_amount")
    minimum = Decimal(str(settings.MIN_ERRAND_AMOUNT))
    maximum = Decimal(str(settings.MAX_ERRAND_AMOUNT))
    if amount < minimum or amount > maximum:
        raise ValidationError(
            f"Amount must be between {minimum} and {maximum}",
            field="original_amount",
            details={"min": str(minimum), "max": str(maximum)},
        )
    return amount


def parse_proof(proof: Optional[str], max_size: int, field: str) -> str:
    if not proof or not proof.strip():
        raise ValidationError("Proof of payment is required", field=field)
    if len(proof) > max_size:
        raise ValidationError(
            "Proof image is too large",
            field=field,
            details={"max_bytes": max_size},
        )
    return proof


def parse_method(value, allowed: type) -> object:
    try:
        return allowed(value)
    except ValueError:
        raise ValidationError(
            f"Unsupported payment method: {value}",
            field="payment_method",
            details={"allowed": [m.value for m in allowed]},
        ) from None


class ErrandPaymentService:
    """Errand payment lifecycle and the ledger postings it triggers"""

    def __init__(
        self,
        db: AsyncSession,
        errands: Optional[ErrandStore] = None,
        notifier: Optional[NotificationSink] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.errands = errands or ErrandLookupService(db)
        self.notifier = notifier or NotificationService(db)
        self.clock = clock
        self.ledger = RunnerLedgerService(db, clock=clock)

    async def _get_assignment(self, errand_id: int) -> ErrandAssignment:
        assignment = await self.errands.get_assignment(errand_id)
        if assignment is None:
            raise NotFound("Errand", errand_id)
        return assignment

    async def _latest_with_status(self, errand_id: int, statuses) -> Optional[ErrandPaymentTransaction]:
        result = await self.db.execute(
            select(ErrandPaymentTransaction)
            .where(
                ErrandPaymentTransaction.errand_id == errand_id,
                ErrandPaymentTransaction.status.in_(statuses),
            )
            .order_by(ErrandPaymentTransaction.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def submit(
        self,
        runner_id: int,
        errand_id: int,
        original_amount,
        proof_of_purchase: str,
        payment_method: str = PaymentMethod.GCASH.value,
        customer_id: Optional[int] = None,
    ) -> ErrandPaymentTransaction:
        """
        Create a pending payment for an accepted errand.

        A rejected or cancelled earlier attempt is replaced. Raises
        AlreadyProcessed when a pending or approved payment already exists.
        """
        amount = parse_amount(original_amount)
        proof = parse_proof(proof_of_purchase, settings.MAX_PROOF_SIZE, "proof_of_purchase")
        method = parse_method(payment_method, PaymentMethod)

        assignment = await self._get_assignment(errand_id)
        if assignment.runner_id != runner_id:
            raise NotAssigned(errand_id, runner_id)
        if customer_id is not None and customer_id != assignment.customer_id:
            raise ValidationError("customer_id does not match the errand", field="customer_id")
        if assignment.status != ErrandStatus.ACCEPTED.value:
            raise InvalidState(
                "Payment can only be submitted for an accepted errand",
                current_state=assignment.status,
            )

        existing = await self._latest_with_status(errand_id, ACTIVE_PAYMENT_STATUSES)
        if existing is not None:
            if existing.is_approved:
                raise AlreadyProcessed(
                    "Payment has already been approved for this errand",
                    details={"transaction_id": existing.id},
                )
            raise AlreadyProcessed(
                "A payment for this errand is already awaiting customer verification",
                details={"transaction_id": existing.id},
            )

        await self.db.execute(
            delete(ErrandPaymentTransaction).where(
                ErrandPaymentTransaction.errand_id == errand_id,
                ErrandPaymentTransaction.status.in_(REPLACEABLE_PAYMENT_STATUSES),
            )
        )

        fees = split_fee(amount)
        transaction = ErrandPaymentTransaction(
            errand_id=errand_id,
            runner_id=runner_id,
            customer_id=assignment.customer_id,
            original_amount=fees.original_amount,
            service_fee=fees.service_fee,
            runner_earnings=fees.runner_earnings,
            platform_commission=fees.platform_commission,
            total_amount=fees.total_amount,
            proof_of_purchase=proof,
            payment_method=method,
            status=ErrandPaymentStatus.PENDING,
        )
        self.db.add(transaction)
        try:
            await self.db.commit()
        except IntegrityError:
            # a concurrent submission won the partial unique index
            await self.db.rollback()
            raise AlreadyProcessed(
                "A payment for this errand is already awaiting customer verification"
            ) from None

        logger.info(
            "Errand payment submitted",
            extra_data={
                "transaction_id": transaction.id,
                "errand_id": errand_id,
                "runner_id": runner_id,
                "original_amount": str(fees.original_amount),
                "total_amount": str(fees.total_amount),
            },
        )

        await notify_after_commit(
            self.db,
            self.notifier,
            assignment.customer_id,
            NotificationKind.PAYMENT_VERIFICATION_REQUIRED,
            {
                "errand_id": errand_id,
                "transaction_id": transaction.id,
                "total_amount": fees.total_amount,
            },
            ttl=timedelta(days=settings.PAYMENT_NOTIFICATION_TTL_DAYS),
        )
        await self.db.refresh(transaction)
        return transaction

    async def verify(
        self,
        customer_id: int,
        errand_id: int,
        verified: bool,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ErrandPaymentTransaction:
        """
        Customer decision on the pending payment.

        Approval posts runner earnings and platform commission in the same
        transaction as the status change. A second decision on the same
        payment raises AlreadyProcessed and posts nothing.
        """
        if notes is not None and len(notes) > 500:
            raise ValidationError("Notes can be at most 500 characters", field="notes")
        method = parse_method(payment_method, PaymentMethod) if payment_method else None

        assignment = await self._get_assignment(errand_id)
        if assignment.customer_id != customer_id:
            raise Unauthorized("Only the errand's customer can verify this payment")

        result = await self.db.execute(
            select(ErrandPaymentTransaction)
            .where(
                ErrandPaymentTransaction.errand_id == errand_id,
                ErrandPaymentTransaction.status == ErrandPaymentStatus.PENDING,
            )
            .order_by(ErrandPaymentTransaction.id.desc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            await self.db.rollback()
            processed = await self._latest_with_status(
                errand_id,
                (
                    ErrandPaymentStatus.APPROVED,
                    ErrandPaymentStatus.CUSTOMER_VERIFIED,
                    ErrandPaymentStatus.REJECTED,
                ),
            )
            if processed is not None:
                raise AlreadyProcessed(
                    "Payment has already been processed",
                    details={"transaction_id": processed.id, "status": processed.status.value},
                )
            raise NotFound("Pending payment for errand", errand_id, ErrorCode.PAYMENT_NOT_FOUND)

        transaction_id = transaction.id
        now = self.clock()
        if verified:
            values = {
                "status": ErrandPaymentStatus.APPROVED,
                "payment_verified": True,
                "verified_at": now,
                "approved_at": now,
                "approved_by": None,
                "notes": notes,
            }
            if method is not None:
                values["payment_method"] = method
        else:
            values = {
                "status": ErrandPaymentStatus.REJECTED,
                "rejection_reason": notes or DEFAULT_REJECTION_REASON,
            }

        try:
            # compare-and-swap: only one caller can move the row out of pending
            swapped = await self.db.execute(
                update(ErrandPaymentTransaction)
                .where(
                    ErrandPaymentTransaction.id == transaction_id,
                    ErrandPaymentTransaction.status == ErrandPaymentStatus.PENDING,
                )
                .values(updated_at=now, **values)
                .execution_options(synchronize_session=False)
            )
            if swapped.rowcount != 1:
                raise AlreadyProcessed(
                    "Payment has already been processed",
                    details={"transaction_id": transaction_id},
                )

            if verified:
                await self.ledger.credit_earnings(
                    transaction.runner_id,
                    transaction.runner_earnings,
                    memo=f"Runner profit from errand #{errand_id}",
                    errand_id=errand_id,
                )
                await self.ledger.debit_commission(
                    transaction.runner_id,
                    transaction.platform_commission,
                    memo=f"Platform commission for errand #{errand_id}",
                    errand_id=errand_id,
                )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AlreadyProcessed(
                "Payment for this errand has already been posted",
                details={"transaction_id": transaction_id},
            ) from None
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(transaction)
        logger.info(
            "Errand payment verified" if verified else "Errand payment rejected",
            extra_data={
                "transaction_id": transaction.id,
                "errand_id": errand_id,
                "runner_id": transaction.runner_id,
                "status": transaction.status.value,
            },
        )

        if verified:
            kind = NotificationKind.PAYMENT_APPROVED
            payload = {
                "errand_id": errand_id,
                "transaction_id": transaction.id,
                "runner_earnings": Decimal(transaction.runner_earnings),
                "platform_commission": Decimal(transaction.platform_commission),
                "due_day": settings.ESCALATION_DUE_DAY,
            }
        else:
            kind = NotificationKind.PAYMENT_REJECTED
            payload = {
                "errand_id": errand_id,
                "transaction_id": transaction.id,
                "reason": transaction.rejection_reason,
            }
        await notify_after_commit(
            self.db,
            self.notifier,
            transaction.runner_id,
            kind,
            payload,
            ttl=timedelta(days=settings.PAYMENT_NOTIFICATION_TTL_DAYS),
        )
        await self.db.refresh(transaction)
        return transaction

    async def list_for_errand(self, user_id: int, errand_id: int) -> list[ErrandPaymentTransaction]:
        """Payment attempts for an errand, newest first; customer or runner only"""
        assignment = await self._get_assignment(errand_id)
        if user_id not in (assignment.customer_id, assignment.runner_id):
            raise Unauthorized("Only the errand's customer or runner can view its payments")
        result = await self.db.execute(
            select(ErrandPaymentTransaction)
            .where(ErrandPaymentTransaction.errand_id == errand_id)
            .order_by(ErrandPaymentTransaction.created_at.desc(), ErrandPaymentTransaction.id.desc())
        )
        return list(result.scalars().all())

    async def list_for_runner(self, runner_id: int, limit: int = 50) -> list[ErrandPaymentTransaction]:
        result = await self.db.execute(
            select(ErrandPaymentTransaction)
            .where(ErrandPaymentTransaction.runner_id == runner_id)
            .order_by(ErrandPaymentTransaction.created_at.desc(), ErrandPaymentTransaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def require_approved_payment(self, runner_id: int, errand_id: int) -> ErrandPaymentTransaction:
        """
        Completion guard for the errand flow: the runner may mark an errand
        done only after its payment was approved.
        """
        assignment = await self._get_assignment(errand_id)
        if assignment.runner_id != runner_id:
            raise NotAssigned(errand_id, runner_id)
        approved = await self._latest_with_status(
            errand_id,
            (ErrandPaymentStatus.APPROVED, ErrandPaymentStatus.CUSTOMER_VERIFIED),
        )
        if approved is None:
            raise InvalidState(
                "Payment must be approved by the customer before completing the errand",
                current_state=assignment.status,
                error_code=ErrorCode.PAYMENT_REQUIRED,
            )
        return approved

    async def list_legacy_verified(self) -> list[ErrandPaymentTransaction]:
        result = await self.db.execute(
            select(ErrandPaymentTransaction)
            .where(ErrandPaymentTransaction.status == ErrandPaymentStatus.CUSTOMER_VERIFIED)
            .order_by(ErrandPaymentTransaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def normalize_legacy_statuses(self) -> int:
        """
        Rewrite legacy customer_verified rows as approved.

        Their commission was posted when the customer verified them, so no
        ledger postings happen here.
        """
        result = await self.db.execute(
            update(ErrandPaymentTransaction)
            .where(ErrandPaymentTransaction.status == ErrandPaymentStatus.CUSTOMER_VERIFIED)
            .values(
                status=ErrandPaymentStatus.APPROVED,
                payment_verified=True,
                approved_at=func.coalesce(
                    ErrandPaymentTransaction.approved_at,
                    ErrandPaymentTransaction.verified_at,
                    ErrandPaymentTransaction.created_at,
                ),
                updated_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        count = result.rowcount or 0
        logger.info("Legacy errand payments normalized", extra_data={"count": count})
        return count
