"""
Collaborator interfaces consumed by the settlement core.

The core never talks to notification, account or errand tables directly; it
goes through these protocols. Database-backed defaults live in
notification_service and account_service.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol


class NotificationKind:
    PAYMENT_VERIFICATION_REQUIRED = "payment_verification_required"
    PAYMENT_APPROVED = "payment_approved"
    PAYMENT_REJECTED = "payment_rejected"
    BALANCE_REMINDER = "balance_reminder"
    BALANCE_PAYMENT_DUE = "balance_payment_due"
    BALANCE_WARNING = "balance_warning"
    BALANCE_CRITICAL = "balance_critical"
    BALANCE_PAYMENT_SUBMITTED = "balance_payment_submitted"
    BALANCE_PAYMENT_APPROVED = "balance_payment_approved"
    BALANCE_PAYMENT_REJECTED = "balance_payment_rejected"
    ACCOUNT_BANNED = "account_banned"


@dataclass(frozen=True)
class ErrandAssignment:
    errand_id: int
    customer_id: int
    runner_id: Optional[int]
    status: str


class NotificationSink(Protocol):
    async def notify(
        self,
        user_id: int,
        kind: str,
        payload: dict[str, Any],
        ttl: Optional[timedelta] = None,
    ) -> None:
        ...


class AccountStore(Protocol):
    async def ban_user(self, user_id: int, reason: str, banned_at: datetime) -> bool:
        """Ban a user; returns False when already banned"""
        ...


class AdminDirectory(Protocol):
    async def list_admins(self) -> list[int]:
        ...


class ErrandStore(Protocol):
    async def get_assignment(self, errand_id: int) -> Optional[ErrandAssignment]:
        ...
