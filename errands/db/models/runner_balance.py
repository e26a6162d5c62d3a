"""
Runner Balance Model - Commission debt per runner

current_balance is what the runner owes the platform. total_earned is the
runner's own profit share and never feeds into the debt.
"""
import enum
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, Boolean, ForeignKey, Enum as SQLEnum

from errands.db.database import Base


class RunnerBalanceStatus(str, enum.Enum):
    ACTIVE = "active"
    PAYMENT_OVERDUE = "payment_overdue"


class RunnerBalance(Base):
    """Running commission-debt ledger, one row per runner"""

    __tablename__ = "runner_balances"

    id = Column(Integer, primary_key=True, index=True)
    runner_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    current_balance = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total_earned = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total_paid = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    last_payment_date = Column(DateTime, nullable=True)

    # Start of the current debt cycle; null while the balance is clear
    balance_started_at = Column(DateTime, nullable=True, index=True)
    status = Column(
        SQLEnum(
            RunnerBalanceStatus,
            name="runner_balance_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=RunnerBalanceStatus.ACTIVE,
        nullable=False,
    )

    # Escalation notices already sent in the current cycle
    reminder_sent = Column(Boolean, default=False, nullable=False)
    due_notice_sent = Column(Boolean, default=False, nullable=False)
    warning_sent = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def reset_cycle(self) -> None:
        """Balance cleared: forget the cycle start and every notice flag"""
        self.current_balance = Decimal("0.00")
        self.balance_started_at = None
        self.status = RunnerBalanceStatus.ACTIVE
        self.reminder_sent = False
        self.due_notice_sent = False
        self.warning_sent = False
