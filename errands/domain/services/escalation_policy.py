"""
Escalation Policy - what to do about an unpaid balance today

Pure: (ledger snapshot, now) -> decision. Days are whole days since the
current debt cycle started.

    day 0-3    nothing
    day >=4    reminder          (once per cycle)
    day >=5    payment due today (once per cycle)
    day >5     warning           (once per cycle)
    day >7     ban, ledger marked payment_overdue
               (critical notice instead when auto-ban is disabled)

One action per evaluation. The most severe applicable action wins and the
lesser notices it supersedes are marked as sent, so evaluating again with the
updated flags yields NONE.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from errands.core.clock import whole_days_between
from errands.core.config import settings
from errands.db.models.runner_balance import RunnerBalanceStatus


class EscalationAction(str, enum.Enum):
    NONE = "none"
    REMINDER = "reminder"
    PAYMENT_DUE_TODAY = "payment_due_today"
    WARNING = "warning"
    CRITICAL = "critical"
    BAN = "ban"


@dataclass(frozen=True)
class EscalationThresholds:
    reminder_day: int = 4
    due_day: int = 5
    ban_after_days: int = 7
    auto_ban_enabled: bool = True

    @classmethod
    def from_settings(cls) -> "EscalationThresholds":
        return cls(
            reminder_day=settings.ESCALATION_REMINDER_DAY,
            due_day=settings.ESCALATION_DUE_DAY,
            ban_after_days=settings.ESCALATION_BAN_AFTER_DAYS,
            auto_ban_enabled=settings.ESCALATION_AUTO_BAN_ENABLED,
        )


@dataclass(frozen=True)
class EscalationDecision:
    action: EscalationAction
    days_elapsed: int = 0
    reminder_sent: bool = False
    due_notice_sent: bool = False
    warning_sent: bool = False
    mark_overdue: bool = False
    days_overdue: int = 0


NO_ACTION = EscalationDecision(action=EscalationAction.NONE)


def evaluate(
    ledger,
    now: datetime,
    thresholds: Optional[EscalationThresholds] = None,
) -> EscalationDecision:
    """
    Next escalation step for a ledger.

    `ledger` needs current_balance, balance_started_at, status and the three
    notice flags; a RunnerBalance row works.
    """
    t = thresholds or EscalationThresholds.from_settings()

    if not ledger.current_balance or ledger.current_balance <= 0 or ledger.balance_started_at is None:
        return NO_ACTION
    if ledger.status == RunnerBalanceStatus.PAYMENT_OVERDUE:
        return NO_ACTION

    days = whole_days_between(ledger.balance_started_at, now)
    overdue = max(days - t.due_day, 0)

    if days > t.ban_after_days:
        return EscalationDecision(
            action=EscalationAction.BAN if t.auto_ban_enabled else EscalationAction.CRITICAL,
            days_elapsed=days,
            days_overdue=overdue,
            reminder_sent=True,
            due_notice_sent=True,
            warning_sent=True,
            mark_overdue=True,
        )
    if days > t.due_day and not ledger.warning_sent:
        return EscalationDecision(
            action=EscalationAction.WARNING,
            days_elapsed=days,
            days_overdue=overdue,
            reminder_sent=True,
            due_notice_sent=True,
            warning_sent=True,
        )
    if days >= t.due_day and not ledger.due_notice_sent:
        return EscalationDecision(
            action=EscalationAction.PAYMENT_DUE_TODAY,
            days_elapsed=days,
            days_overdue=overdue,
            reminder_sent=True,
            due_notice_sent=True,
            warning_sent=bool(ledger.warning_sent),
        )
    if days >= t.reminder_day and not ledger.reminder_sent:
        return EscalationDecision(
            action=EscalationAction.REMINDER,
            days_elapsed=days,
            days_overdue=overdue,
            reminder_sent=True,
            due_notice_sent=bool(ledger.due_notice_sent),
            warning_sent=bool(ledger.warning_sent),
        )
    return EscalationDecision(action=EscalationAction.NONE, days_elapsed=days, days_overdue=overdue)


def apply_decision(ledger, decision: EscalationDecision) -> None:
    """Persist the decision's flags onto the ledger (no-op for NONE)"""
    if decision.action == EscalationAction.NONE:
        return
    ledger.reminder_sent = decision.reminder_sent
    ledger.due_notice_sent = decision.due_notice_sent
    ledger.warning_sent = decision.warning_sent
    if decision.mark_overdue:
        ledger.status = RunnerBalanceStatus.PAYMENT_OVERDUE
