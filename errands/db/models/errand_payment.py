"""
Errand Payment Model - Runner spend awaiting customer verification

The fee split is persisted at submission so historical rows stay reproducible
even if the fee policy changes later.
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, Numeric, DateTime, Boolean, Text, ForeignKey, Index, Enum as SQLEnum, text
)

from errands.db.database import Base


class PaymentMethod(str, enum.Enum):
    GCASH = "gcash"
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"

    @property
    def display(self) -> str:
        return _PAYMENT_METHOD_DISPLAY[self]


_PAYMENT_METHOD_DISPLAY = {
    PaymentMethod.GCASH: "GCash",
    PaymentMethod.COD: "Cash on Delivery",
    PaymentMethod.BANK_TRANSFER: "Bank Transfer",
}


class ErrandPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    # Historical rows only: verified by the customer back when an admin still
    # had to approve. Treated as approved; never written by current code.
    CUSTOMER_VERIFIED = "customer_verified"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses that block a new submission for the same errand
ACTIVE_PAYMENT_STATUSES = (
    ErrandPaymentStatus.PENDING,
    ErrandPaymentStatus.APPROVED,
    ErrandPaymentStatus.CUSTOMER_VERIFIED,
)

# Statuses a resubmission may replace
REPLACEABLE_PAYMENT_STATUSES = (
    ErrandPaymentStatus.REJECTED,
    ErrandPaymentStatus.CANCELLED,
)

_STATUS_DISPLAY = {
    ErrandPaymentStatus.PENDING: "Pending Customer Verification",
    ErrandPaymentStatus.CUSTOMER_VERIFIED: "Customer Verified - Auto-Approved (Legacy)",
    ErrandPaymentStatus.APPROVED: "Approved",
    ErrandPaymentStatus.REJECTED: "Rejected",
    ErrandPaymentStatus.CANCELLED: "Cancelled",
}


class ErrandPaymentTransaction(Base):
    """One payment attempt for an errand"""

    __tablename__ = "errand_payments"

    id = Column(Integer, primary_key=True, index=True)
    errand_id = Column(Integer, ForeignKey("errands.id"), nullable=False, index=True)
    runner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    original_amount = Column(Numeric(10, 2), nullable=False)
    service_fee = Column(Numeric(10, 2), nullable=False)
    runner_earnings = Column(Numeric(10, 2), nullable=False)
    platform_commission = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)

    proof_of_purchase = Column(Text, nullable=False)
    payment_method = Column(
        SQLEnum(
            PaymentMethod,
            name="errand_payment_method",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=PaymentMethod.GCASH,
    )
    status = Column(
        SQLEnum(
            ErrandPaymentStatus,
            name="errand_payment_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=ErrandPaymentStatus.PENDING,
        index=True,
    )

    payment_verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # null = system auto-approval
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # At most one pending or approved payment per errand
    __table_args__ = (
        Index(
            "uq_errand_payments_active",
            "errand_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'approved', 'customer_verified')"),
            sqlite_where=text("status IN ('pending', 'approved', 'customer_verified')"),
        ),
    )

    @property
    def is_approved(self) -> bool:
        """Approved, including the legacy customer-verified variant"""
        return self.status in (
            ErrandPaymentStatus.APPROVED,
            ErrandPaymentStatus.CUSTOMER_VERIFIED,
        )

    @property
    def can_modify(self) -> bool:
        return self.status in (ErrandPaymentStatus.PENDING, ErrandPaymentStatus.REJECTED)

    @property
    def status_display(self) -> str:
        return _STATUS_DISPLAY.get(self.status, str(self.status).title())

    @property
    def payment_method_display(self) -> str:
        return self.payment_method.display if self.payment_method else ""
