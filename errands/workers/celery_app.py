"""
Celery Application Configuration
"""
from celery import Celery
from celery.schedules import crontab

from errands.core.config import settings

celery_app = Celery(
    "errands_settlement",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["errands.workers.tasks"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Manila",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,  # 15 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Reminders, due notices, warnings and bans for runners with commission debt
    "process-balance-escalations-daily": {
        "task": "errands.workers.tasks.process_balance_escalations",
        "schedule": crontab(hour=settings.ESCALATION_HOUR, minute=0),
    },
    "cleanup-expired-notifications-daily": {
        "task": "errands.workers.tasks.cleanup_expired_notifications",
        "schedule": crontab(hour=3, minute=30),
    },
}
