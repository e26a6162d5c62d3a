"""
Runner Balance API Routes - commission debt status and repayments
"""
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from errands.api.dependencies.auth import get_current_user, require_admin
from errands.api.routes.schemas import (
    ApproveRequest,
    BalanceDecisionResponse,
    BalanceHistoryResponse,
    BalancePaymentResponse,
    BalanceStatusResponse,
    GCashInfo,
    LedgerEntryResponse,
    PaymentStatusResponse,
    RejectRequest,
    RepayRequest,
    RepayResponse,
    RunnerBalanceSummary,
)
from errands.core.clock import utcnow
from errands.db.database import get_db
from errands.db.models.runner_balance import RunnerBalanceStatus
from errands.db.models.user import User
from errands.domain.services.balance_repayment_service import BalanceRepaymentService, gcash_info
from errands.domain.services.runner_ledger_service import RunnerLedgerService, payment_status

router = APIRouter()


@router.post(
    "/repay",
    response_model=RepayResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a balance repayment",
    description="Pays the full outstanding balance; an admin approves it after checking the proof.",
)
async def submit_repayment(
    data: RepayRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = BalanceRepaymentService(db)
    payment = await service.submit(
        runner_id=user.id,
        proof_of_payment=data.proof_of_payment,
        payment_method=data.payment_method,
        notes=data.notes,
    )
    return RepayResponse(
        message="Balance payment submitted. Waiting for admin approval.",
        status_display=payment.status_display,
        payment=BalancePaymentResponse.from_model(payment),
        gcash_info=GCashInfo(**gcash_info()),
    )


@router.patch(
    "/{transaction_id}/approve",
    response_model=BalanceDecisionResponse,
    summary="Approve a balance repayment",
    description="Admin only. Applies the repayment to the runner's balance.",
)
async def approve_repayment(
    transaction_id: int,
    data: ApproveRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = BalanceRepaymentService(db)
    payment, ledger = await service.approve(
        admin_id=user.id,
        transaction_id=transaction_id,
        notes=data.notes if data else None,
    )
    return BalanceDecisionResponse(
        message="Balance payment approved.",
        status_display=payment.status_display,
        payment=BalancePaymentResponse.from_model(payment),
        remaining_balance=float(ledger.current_balance),
    )


@router.patch(
    "/{transaction_id}/reject",
    response_model=BalanceDecisionResponse,
    summary="Reject a balance repayment",
    description="Admin only. The runner is notified and may submit again.",
)
async def reject_repayment(
    transaction_id: int,
    data: RejectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = BalanceRepaymentService(db)
    payment = await service.reject(
        admin_id=user.id,
        transaction_id=transaction_id,
        reason=data.reason,
    )
    return BalanceDecisionResponse(
        message="Balance payment rejected.",
        status_display=payment.status_display,
        payment=BalancePaymentResponse.from_model(payment),
    )


@router.get(
    "/status",
    response_model=BalanceStatusResponse,
    summary="Runner balance status",
    description="Outstanding commission, where the runner stands in the 5-day window and any pending repayment.",
)
async def get_balance_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ledger, current = await RunnerLedgerService(db).get_status(user.id)
    pending = await BalanceRepaymentService(db).get_pending_for_runner(user.id)
    return BalanceStatusResponse(
        runner_id=user.id,
        current_balance=float(ledger.current_balance) if ledger else 0.0,
        total_earned=float(ledger.total_earned) if ledger else 0.0,
        total_paid=float(ledger.total_paid) if ledger else 0.0,
        balance_started_at=ledger.balance_started_at if ledger else None,
        last_payment_date=ledger.last_payment_date if ledger else None,
        account_status=ledger.status.value if ledger else RunnerBalanceStatus.ACTIVE.value,
        status_display=current.message,
        payment_status=PaymentStatusResponse.from_status(current),
        pending_payment=BalancePaymentResponse.from_model(pending) if pending else None,
        is_banned=bool(user.is_banned),
        gcash_info=GCashInfo(**gcash_info()),
    )


@router.get(
    "/history",
    response_model=BalanceHistoryResponse,
    summary="Runner ledger history",
)
async def get_balance_history(
    limit: int = Query(20, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ledgers = RunnerLedgerService(db)
    _, current = await ledgers.get_status(user.id)
    entries = await ledgers.get_history(user.id, limit)
    payments = await BalanceRepaymentService(db).list_for_runner(user.id, limit)
    return BalanceHistoryResponse(
        runner_id=user.id,
        status_display=current.message,
        entries=[LedgerEntryResponse.from_model(e) for e in entries],
        payments=[BalancePaymentResponse.from_model(p) for p in payments],
    )


@router.get(
    "/pending",
    response_model=List[BalancePaymentResponse],
    summary="Repayments awaiting approval",
    description="Admin only. Oldest first.",
)
async def list_pending_repayments(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    payments = await BalanceRepaymentService(db).list_pending()
    return [BalancePaymentResponse.from_model(p) for p in payments]


@router.get(
    "/runners",
    response_model=List[RunnerBalanceSummary],
    summary="Runners with outstanding balance",
    description="Admin only. Oldest debt cycle first.",
)
async def list_runner_balances(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    ledgers = await RunnerLedgerService(db).list_outstanding()
    return [RunnerBalanceSummary.from_ledger(ledger, payment_status(ledger, now)) for ledger in ledgers]
