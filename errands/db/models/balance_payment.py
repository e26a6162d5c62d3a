"""
Balance Payment Model - Runner repayments of commission debt
"""
import enum
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, Text, ForeignKey, Enum as SQLEnum

from errands.db.database import Base


class BalancePaymentMethod(str, enum.Enum):
    GCASH = "gcash"
    BANK_TRANSFER = "bank_transfer"


class BalancePaymentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


_METHOD_DISPLAY = {
    BalancePaymentMethod.GCASH: "GCash",
    BalancePaymentMethod.BANK_TRANSFER: "Bank Transfer",
}

_STATUS_DISPLAY = {
    BalancePaymentStatus.PENDING: "Pending Admin Approval",
    BalancePaymentStatus.APPROVED: "Approved",
    BalancePaymentStatus.REJECTED: "Rejected",
}


class BalancePaymentTransaction(Base):
    """Lump-sum repayment awaiting admin review"""

    __tablename__ = "balance_payments"

    id = Column(Integer, primary_key=True, index=True)
    runner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Snapshot of the runner's balance when the repayment was submitted
    amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    proof_of_payment = Column(Text, nullable=False)
    payment_method = Column(
        SQLEnum(
            BalancePaymentMethod,
            name="balance_payment_method",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=BalancePaymentMethod.GCASH,
    )
    status = Column(
        SQLEnum(
            BalancePaymentStatus,
            name="balance_payment_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=BalancePaymentStatus.PENDING,
        index=True,
    )

    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def status_display(self) -> str:
        return _STATUS_DISPLAY.get(self.status, str(self.status).title())

    @property
    def payment_method_display(self) -> str:
        return _METHOD_DISPLAY.get(self.payment_method, "")
