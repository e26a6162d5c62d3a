"""
Celery Tasks for the commission-debt ledger

The daily escalation run and housekeeping of expired notifications.
"""
import asyncio
from contextlib import contextmanager

from sqlalchemy import delete

from errands.core.clock import utcnow
from errands.core.logging import get_logger, set_correlation_id
from errands.db.database import get_task_session
from errands.db.models.notification import Notification
from errands.domain.services.escalation_service import EscalationService
from errands.workers.celery_app import celery_app

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            # the Redis singleton is bound to this loop; drop it before closing
            from errands.core.redis_client import close_redis
            loop.run_until_complete(close_redis())
        except Exception as e:
            logger.warning(
                "Failed to close Redis at task end",
                extra_data={"error": str(e)},
            )
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    # Set correlation ID for task tracking
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


async def run_escalations() -> dict:
    """One escalation pass over every runner with an outstanding balance"""
    async with get_task_session() as db:
        report = await EscalationService(db).run_once()
        return report.to_dict()


@celery_app.task(name="errands.workers.tasks.process_balance_escalations")
def process_balance_escalations():
    """
    Daily check of runner balances.

    Idempotent: notice flags and the overdue status make a second run on the
    same day a no-op for every runner already handled.
    """
    return run_async(run_escalations())


async def delete_expired_notifications() -> dict:
    """Delete notifications whose TTL has passed"""
    async with get_task_session() as db:
        result = await db.execute(
            delete(Notification).where(
                Notification.expires_at.is_not(None),
                Notification.expires_at < utcnow(),
            )
        )
        deleted = result.rowcount

        await db.commit()
        logger.info(
            "Cleaned up expired notifications",
            extra_data={"deleted": deleted},
        )
        return {"deleted": deleted}


@celery_app.task(name="errands.workers.tasks.cleanup_expired_notifications")
def cleanup_expired_notifications():
    return run_async(delete_expired_notifications())
