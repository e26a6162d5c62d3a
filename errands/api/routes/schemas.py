"""
Request / response schemas shared by the payment and balance routes
"""
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel

from errands.db.models.balance_payment import BalancePaymentTransaction
from errands.db.models.errand_payment import ErrandPaymentTransaction
from errands.db.models.ledger_entry import RunnerLedgerEntry
from errands.db.models.runner_balance import RunnerBalance
from errands.domain.services.runner_ledger_service import PaymentStatus


def _money(value) -> float:
    return float(value) if value is not None else 0.0


# ==================== Errand payments ====================


class PaymentSubmitRequest(BaseModel):
    """Runner reports the amount spent on an errand"""
    errand_id: int
    original_amount: Union[float, str]
    proof_of_purchase: str
    payment_method: str = "gcash"
    customer_id: Optional[int] = None


class PaymentVerifyRequest(BaseModel):
    """Customer approves or rejects the submitted amount"""
    errand_id: int
    verified: bool
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class ErrandPaymentResponse(BaseModel):
    id: int
    errand_id: int
    runner_id: int
    customer_id: int
    original_amount: float
    service_fee: float
    runner_earnings: float
    platform_commission: float
    total_amount: float
    payment_method: str
    payment_method_display: str
    status: str
    status_display: str
    payment_verified: bool
    can_modify: bool
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, tx: ErrandPaymentTransaction) -> "ErrandPaymentResponse":
        return cls(
            id=tx.id,
            errand_id=tx.errand_id,
            runner_id=tx.runner_id,
            customer_id=tx.customer_id,
            original_amount=_money(tx.original_amount),
            service_fee=_money(tx.service_fee),
            runner_earnings=_money(tx.runner_earnings),
            platform_commission=_money(tx.platform_commission),
            total_amount=_money(tx.total_amount),
            payment_method=tx.payment_method.value,
            payment_method_display=tx.payment_method_display,
            status=tx.status.value,
            status_display=tx.status_display,
            payment_verified=bool(tx.payment_verified),
            can_modify=tx.can_modify,
            rejection_reason=tx.rejection_reason,
            notes=tx.notes,
            verified_at=tx.verified_at,
            approved_at=tx.approved_at,
            created_at=tx.created_at,
        )


class PaymentActionResponse(BaseModel):
    message: str
    status_display: str
    payment: ErrandPaymentResponse


class CompletionCheckResponse(BaseModel):
    errand_id: int
    can_complete: bool
    status_display: str
    message: str


class LegacyNormalizeResponse(BaseModel):
    normalized: int
    status_display: str


# ==================== Runner balance ====================


class GCashInfo(BaseModel):
    gcash_number: str
    account_name: str


class PaymentStatusResponse(BaseModel):
    status: str
    status_display: str
    urgency: str
    days_elapsed: int
    days_overdue: int

    @classmethod
    def from_status(cls, status: PaymentStatus) -> "PaymentStatusResponse":
        return cls(
            status=status.status,
            status_display=status.message,
            urgency=status.urgency,
            days_elapsed=status.days_elapsed,
            days_overdue=status.days_overdue,
        )


class BalancePaymentResponse(BaseModel):
    id: int
    runner_id: int
    amount: float
    payment_method: str
    payment_method_display: str
    status: str
    status_display: str
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, tx: BalancePaymentTransaction) -> "BalancePaymentResponse":
        return cls(
            id=tx.id,
            runner_id=tx.runner_id,
            amount=_money(tx.amount),
            payment_method=tx.payment_method.value,
            payment_method_display=tx.payment_method_display,
            status=tx.status.value,
            status_display=tx.status_display,
            approved_by=tx.approved_by,
            approved_at=tx.approved_at,
            rejection_reason=tx.rejection_reason,
            notes=tx.notes,
            created_at=tx.created_at,
        )


class RepayRequest(BaseModel):
    proof_of_payment: str
    payment_method: str = "gcash"
    notes: Optional[str] = None


class RepayResponse(BaseModel):
    message: str
    status_display: str
    payment: BalancePaymentResponse
    gcash_info: GCashInfo


class ApproveRequest(BaseModel):
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str


class BalanceDecisionResponse(BaseModel):
    message: str
    status_display: str
    payment: BalancePaymentResponse
    remaining_balance: Optional[float] = None


class BalanceStatusResponse(BaseModel):
    runner_id: int
    current_balance: float
    total_earned: float
    total_paid: float
    balance_started_at: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    account_status: str
    status_display: str
    payment_status: PaymentStatusResponse
    pending_payment: Optional[BalancePaymentResponse] = None
    is_banned: bool
    gcash_info: GCashInfo


class RunnerBalanceSummary(BaseModel):
    """One runner with outstanding debt, for the admin overview"""
    runner_id: int
    current_balance: float
    total_earned: float
    total_paid: float
    balance_started_at: Optional[datetime] = None
    account_status: str
    status_display: str
    urgency: str
    days_elapsed: int
    days_overdue: int

    @classmethod
    def from_ledger(cls, ledger: RunnerBalance, status: PaymentStatus) -> "RunnerBalanceSummary":
        return cls(
            runner_id=ledger.runner_id,
            current_balance=_money(ledger.current_balance),
            total_earned=_money(ledger.total_earned),
            total_paid=_money(ledger.total_paid),
            balance_started_at=ledger.balance_started_at,
            account_status=ledger.status.value,
            status_display=status.message,
            urgency=status.urgency,
            days_elapsed=status.days_elapsed,
            days_overdue=status.days_overdue,
        )


class LedgerEntryResponse(BaseModel):
    id: int
    entry_type: str
    amount: float
    balance_after: float
    errand_id: Optional[int] = None
    balance_payment_id: Optional[int] = None
    memo: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, entry: RunnerLedgerEntry) -> "LedgerEntryResponse":
        return cls(
            id=entry.id,
            entry_type=entry.entry_type.value,
            amount=_money(entry.amount),
            balance_after=_money(entry.balance_after),
            errand_id=entry.errand_id,
            balance_payment_id=entry.balance_payment_id,
            memo=entry.memo,
            created_at=entry.created_at,
        )


class BalanceHistoryResponse(BaseModel):
    runner_id: int
    status_display: str
    entries: List[LedgerEntryResponse]
    payments: List[BalancePaymentResponse]
