"""
Domain Services
"""
from errands.domain.services.runner_ledger_service import RunnerLedgerService
from errands.domain.services.errand_payment_service import ErrandPaymentService
from errands.domain.services.balance_repayment_service import BalanceRepaymentService
from errands.domain.services.escalation_service import EscalationService
from errands.domain.services.notification_service import NotificationService
from errands.domain.services.account_service import AccountService, ErrandLookupService

__all__ = [
    "RunnerLedgerService",
    "ErrandPaymentService",
    "BalanceRepaymentService",
    "EscalationService",
    "NotificationService",
    "AccountService",
    "ErrandLookupService",
]
