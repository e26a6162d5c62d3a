"""
Runner Ledger Entry Model - Immutable posting history
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, Numeric, DateTime, String, ForeignKey, Enum as SQLEnum, UniqueConstraint
)

from errands.db.database import Base


class LedgerEntryType(str, enum.Enum):
    COMMISSION_DEBIT = "commission_debit"
    EARNINGS_CREDIT = "earnings_credit"
    BALANCE_PAYMENT = "balance_payment"


class RunnerLedgerEntry(Base):
    """One posting against a runner's balance or earnings"""

    __tablename__ = "runner_ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    runner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    errand_id = Column(Integer, ForeignKey("errands.id"), nullable=True)
    balance_payment_id = Column(Integer, ForeignKey("balance_payments.id"), nullable=True)

    entry_type = Column(
        SQLEnum(
            LedgerEntryType,
            name="runner_ledger_entry_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    amount = Column(Numeric(10, 2), nullable=False)  # positive for debt/earnings added, negative for repayments
    balance_after = Column(Numeric(10, 2), nullable=False)  # current_balance after the posting

    memo = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # An errand can be posted to a runner's ledger only once per entry type
    __table_args__ = (
        UniqueConstraint("runner_id", "errand_id", "entry_type", name="uq_runner_errand_entry_type"),
    )
