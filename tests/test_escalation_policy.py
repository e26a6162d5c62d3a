"""
Escalation policy: pure decisions from a ledger snapshot and the current time.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import pytest
from hypothesis import given, settings as h_settings
from hypothesis.strategies import booleans, integers

from errands.db.models.runner_balance import RunnerBalanceStatus
from errands.domain.services.escalation_policy import (
    NO_ACTION,
    EscalationAction,
    EscalationThresholds,
    apply_decision,
    evaluate,
)

T0 = datetime(2026, 3, 2, 9, 0, 0)
DEFAULTS = EscalationThresholds()


@dataclass
class Snapshot:
    """Stand-in for a RunnerBalance row"""
    current_balance: Decimal = Decimal("9.00")
    balance_started_at: Optional[datetime] = T0
    status: RunnerBalanceStatus = RunnerBalanceStatus.ACTIVE
    reminder_sent: bool = False
    due_notice_sent: bool = False
    warning_sent: bool = False


def _at(days: int, hours: int = 0) -> datetime:
    return T0 + timedelta(days=days, hours=hours)


class TestEvaluate:

    @pytest.mark.unit
    @pytest.mark.parametrize("days", [0, 1, 2, 3])
    def test_grace_period(self, days):
        assert evaluate(Snapshot(), _at(days, 23), DEFAULTS).action == EscalationAction.NONE

    @pytest.mark.unit
    def test_day_four_reminder(self):
        decision = evaluate(Snapshot(), _at(4), DEFAULTS)

        assert decision.action == EscalationAction.REMINDER
        assert decision.reminder_sent is True
        assert decision.due_notice_sent is False

    @pytest.mark.unit
    def test_day_five_due_today(self):
        decision = evaluate(Snapshot(reminder_sent=True), _at(5), DEFAULTS)

        assert decision.action == EscalationAction.PAYMENT_DUE_TODAY
        assert decision.due_notice_sent is True

    @pytest.mark.unit
    def test_day_six_warning(self):
        decision = evaluate(Snapshot(reminder_sent=True, due_notice_sent=True), _at(6), DEFAULTS)

        assert decision.action == EscalationAction.WARNING
        assert decision.days_overdue == 1
        assert decision.mark_overdue is False

    @pytest.mark.unit
    @pytest.mark.parametrize("days", [6, 7])
    def test_warning_sent_then_quiet_until_ban(self, days):
        snapshot = Snapshot(reminder_sent=True, due_notice_sent=True, warning_sent=True)

        assert evaluate(snapshot, _at(days), DEFAULTS).action == EscalationAction.NONE

    @pytest.mark.unit
    def test_day_eight_ban(self):
        snapshot = Snapshot(reminder_sent=True, due_notice_sent=True, warning_sent=True)

        decision = evaluate(snapshot, _at(8), DEFAULTS)

        assert decision.action == EscalationAction.BAN
        assert decision.mark_overdue is True
        assert decision.days_overdue == 3

    @pytest.mark.unit
    def test_critical_when_auto_ban_disabled(self):
        thresholds = EscalationThresholds(auto_ban_enabled=False)

        decision = evaluate(Snapshot(warning_sent=True), _at(9), thresholds)

        assert decision.action == EscalationAction.CRITICAL
        assert decision.mark_overdue is True

    @pytest.mark.unit
    def test_missed_runs_jump_to_most_severe(self):
        """Scheduler down since day 2: day 6 sends only the warning and marks the rest sent"""
        decision = evaluate(Snapshot(), _at(6), DEFAULTS)

        assert decision.action == EscalationAction.WARNING
        assert decision.reminder_sent and decision.due_notice_sent and decision.warning_sent

    @pytest.mark.unit
    def test_configurable_ban_threshold(self):
        thresholds = EscalationThresholds(ban_after_days=10)
        snapshot = Snapshot(reminder_sent=True, due_notice_sent=True, warning_sent=True)

        assert evaluate(snapshot, _at(10), thresholds).action == EscalationAction.NONE
        assert evaluate(snapshot, _at(11), thresholds).action == EscalationAction.BAN

    @pytest.mark.unit
    @pytest.mark.parametrize("snapshot", [
        Snapshot(current_balance=Decimal("0.00")),
        Snapshot(balance_started_at=None),
        Snapshot(status=RunnerBalanceStatus.PAYMENT_OVERDUE),
    ])
    def test_no_action_cases(self, snapshot):
        assert evaluate(snapshot, _at(30), DEFAULTS) == NO_ACTION


class TestApplyDecision:

    @pytest.mark.unit
    def test_ban_marks_overdue(self):
        snapshot = Snapshot()

        apply_decision(snapshot, evaluate(snapshot, _at(8), DEFAULTS))

        assert snapshot.status == RunnerBalanceStatus.PAYMENT_OVERDUE
        assert snapshot.reminder_sent and snapshot.due_notice_sent and snapshot.warning_sent

    @pytest.mark.unit
    def test_none_leaves_flags(self):
        snapshot = Snapshot(reminder_sent=True)

        apply_decision(snapshot, evaluate(snapshot, _at(1), DEFAULTS))

        assert snapshot.reminder_sent is True
        assert snapshot.due_notice_sent is False


class TestPolicyProperties:

    @pytest.mark.unit
    @h_settings(max_examples=300)
    @given(
        days=integers(min_value=0, max_value=40),
        reminder=booleans(),
        due=booleans(),
        warning=booleans(),
    )
    def test_reevaluation_after_apply_is_quiet(self, days, reminder, due, warning):
        snapshot = Snapshot(reminder_sent=reminder, due_notice_sent=due, warning_sent=warning)
        now = _at(days)

        apply_decision(snapshot, evaluate(snapshot, now, DEFAULTS))

        assert evaluate(snapshot, now, DEFAULTS).action == EscalationAction.NONE

    @pytest.mark.unit
    @h_settings(max_examples=200)
    @given(days=integers(min_value=0, max_value=40))
    def test_deterministic(self, days):
        assert evaluate(Snapshot(), _at(days), DEFAULTS) == evaluate(Snapshot(), _at(days), DEFAULTS)
