"""
Database Models
"""
from errands.db.models.user import User
from errands.db.models.errand import Errand
from errands.db.models.notification import Notification
from errands.db.models.errand_payment import ErrandPaymentTransaction
from errands.db.models.runner_balance import RunnerBalance
from errands.db.models.balance_payment import BalancePaymentTransaction
from errands.db.models.ledger_entry import RunnerLedgerEntry

__all__ = [
    "User",
    "Errand",
    "Notification",
    "ErrandPaymentTransaction",
    "RunnerBalance",
    "BalancePaymentTransaction",
    "RunnerLedgerEntry",
]
