"""
Notification Service - database-backed NotificationSink

Rows are added and flushed in the caller's session; committing is the
caller's decision so a notice can share a transaction with the state change
that caused it (escalation) or follow it separately (request flows).
"""
from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from errands.core.clock import utcnow
from errands.core.logging import get_logger
from errands.db.models.notification import Notification
from errands.domain.services.collaborators import NotificationKind

logger = get_logger(__name__)

# kind -> (title, message template); templates use keys of the notify payload
NOTIFICATION_TEMPLATES: dict[str, tuple[str, str]] = {
    NotificationKind.PAYMENT_VERIFICATION_REQUIRED: (
        "Payment Verification Required",
        "Runner has submitted payment amount of {total_amount}. Please verify.",
    ),
    NotificationKind.PAYMENT_APPROVED: (
        "Payment Approved",
        "Customer verified and approved your payment! You earned {runner_earnings} profit. "
        "Platform commission of {platform_commission} added to your balance "
        "(pay within {due_day} days). You can now complete the errand.",
    ),
    NotificationKind.PAYMENT_REJECTED: (
        "Payment Rejected",
        "Customer rejected your payment amount. Please discuss and resubmit. Reason: {reason}",
    ),
    NotificationKind.BALANCE_REMINDER: (
        "Payment Reminder",
        "Your errands balance of {balance} will be due in {days_until_due} day(s). "
        "Please pay before then to avoid penalties.",
    ),
    NotificationKind.BALANCE_PAYMENT_DUE: (
        "Payment Due Today - {due_day} Days Reached",
        "Your errands balance of {balance} is due today ({due_day} days). "
        "Please pay immediately to avoid your account being marked as overdue.",
    ),
    NotificationKind.BALANCE_WARNING: (
        "Payment Overdue - Warning",
        "Your errands balance of {balance} is now {days_overdue} day(s) overdue. "
        "Please pay immediately to avoid account suspension.",
    ),
    NotificationKind.BALANCE_CRITICAL: (
        "CRITICAL: Payment Required",
        "URGENT: Your errands balance of {balance} is {days_overdue} days overdue. "
        "Your account may be restricted until payment is made.",
    ),
    NotificationKind.BALANCE_PAYMENT_SUBMITTED: (
        "Balance Payment Submitted",
        "Balance payment of {amount} has been submitted and is awaiting admin approval.",
    ),
    NotificationKind.BALANCE_PAYMENT_APPROVED: (
        "Balance Payment Approved",
        "Your balance payment of {amount} has been approved. "
        "Your remaining balance is {balance}.",
    ),
    NotificationKind.BALANCE_PAYMENT_REJECTED: (
        "Balance Payment Rejected",
        "Your balance payment of {amount} has been rejected. Reason: {reason}",
    ),
    NotificationKind.ACCOUNT_BANNED: (
        "Account Permanently Banned",
        "Your account has been permanently banned due to overdue balance payment of "
        "{balance}. Payment was due {days_past_due} days ago.",
    ),
}


def format_peso(amount: Decimal | float | int) -> str:
    return f"₱{Decimal(str(amount)):,.2f}"


def render_notification(kind: str, payload: dict[str, Any]) -> tuple[str, str]:
    """Title and message for a notification kind; money values are shown in pesos"""
    try:
        title, template = NOTIFICATION_TEMPLATES[kind]
    except KeyError:
        raise ValueError(f"Unknown notification kind: {kind}") from None
    values = {
        key: format_peso(value) if isinstance(value, Decimal) else value
        for key, value in payload.items()
    }
    return title.format_map(values), template.format_map(values)


async def notify_after_commit(
    db: AsyncSession,
    notifier,
    user_id: int,
    kind: str,
    payload: dict[str, Any],
    ttl: Optional[timedelta] = None,
) -> bool:
    """
    Send a notice once the financial change it reports is already committed.

    Failures are logged and rolled back; they never undo the committed change.
    """
    try:
        await notifier.notify(user_id, kind, payload, ttl)
        await db.commit()
        return True
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to send notification",
            extra_data={"user_id": user_id, "kind": kind, "error": str(e)},
            exc_info=True,
        )
        return False


class NotificationService:
    """Writes notifications into the notifications table"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        user_id: int,
        kind: str,
        payload: dict[str, Any],
        ttl: Optional[timedelta] = None,
    ) -> None:
        title, message = render_notification(kind, payload)
        notification = Notification(
            user_id=user_id,
            errand_id=payload.get("errand_id"),
            type=kind,
            title=title,
            message=message,
            payload={k: str(v) if isinstance(v, Decimal) else v for k, v in payload.items()},
            expires_at=utcnow() + ttl if ttl else None,
        )
        self.db.add(notification)
        await self.db.flush()
        logger.debug(
            "Notification queued",
            extra_data={"user_id": user_id, "kind": kind},
        )
