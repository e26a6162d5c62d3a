"""
Tests for the Celery workers - errands/workers/tasks.py

Covers:
- The daily escalation pass run through the task session
- Cleanup of expired notifications
- Task wiring (run_async) and the beat schedule
- Event loop management inside Celery tasks
"""
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errands.core.clock import utcnow
from errands.db.models.notification import Notification
from errands.db.models.runner_balance import RunnerBalance


def _patch_task_session(db_session: AsyncSession):
    """Make get_task_session yield the test session"""
    patcher = patch("errands.workers.tasks.get_task_session")
    mock_session_ctx = patcher.start()
    mock_session_ctx.return_value.__aenter__ = AsyncMock(return_value=db_session)
    mock_session_ctx.return_value.__aexit__ = AsyncMock(return_value=None)
    return patcher


def _consume(result):
    """Stand-in for run_async: discards the coroutine and returns a canned result"""
    def _run(coro):
        coro.close()
        return result
    return _run


# ============================================================================
# Escalation run
# ============================================================================


class TestRunEscalations:

    @pytest.mark.asyncio
    async def test_reports_counts(self, runner, runner_balance_factory, db_session) -> None:
        from errands.workers.tasks import run_escalations

        await runner_balance_factory(
            runner.id,
            current_balance="6.00",
            balance_started_at=utcnow() - timedelta(days=4, hours=1),
        )

        patcher = _patch_task_session(db_session)
        try:
            report = await run_escalations()
        finally:
            patcher.stop()

        assert report["processed"] == 1
        assert report["reminders"] == 1
        assert report["run_skipped"] is False

        result = await db_session.execute(
            select(RunnerBalance.reminder_sent).where(RunnerBalance.runner_id == runner.id)
        )
        assert result.scalar_one() is True

    @pytest.mark.asyncio
    async def test_nothing_outstanding(self, db_session) -> None:
        from errands.workers.tasks import run_escalations

        patcher = _patch_task_session(db_session)
        try:
            report = await run_escalations()
        finally:
            patcher.stop()

        assert report["processed"] == 0
        assert report["failed"] == 0


# ============================================================================
# Notification cleanup
# ============================================================================


class TestNotificationCleanup:

    @pytest.mark.asyncio
    async def test_deletes_only_expired(self, runner, db_session) -> None:
        from errands.workers.tasks import delete_expired_notifications

        now = utcnow()
        for title, expires_at in [
            ("expired", now - timedelta(hours=1)),
            ("live", now + timedelta(days=1)),
            ("forever", None),
        ]:
            db_session.add(Notification(
                user_id=runner.id,
                type="balance_reminder",
                title=title,
                message=title,
                expires_at=expires_at,
            ))
        await db_session.commit()

        patcher = _patch_task_session(db_session)
        try:
            result = await delete_expired_notifications()
        finally:
            patcher.stop()

        assert result == {"deleted": 1}
        remaining = await db_session.execute(select(Notification.title).order_by(Notification.title))
        assert list(remaining.scalars().all()) == ["forever", "live"]


# ============================================================================
# Task wiring
# ============================================================================


class TestTaskWiring:

    def test_escalation_task_runs_coroutine(self) -> None:
        from errands.workers.tasks import process_balance_escalations

        expected = {"processed": 0, "run_skipped": True}
        with patch("errands.workers.tasks.run_async", side_effect=_consume(expected)) as mock_run:
            assert process_balance_escalations() == expected
        mock_run.assert_called_once()

    def test_cleanup_task_runs_coroutine(self) -> None:
        from errands.workers.tasks import cleanup_expired_notifications

        with patch("errands.workers.tasks.run_async", side_effect=_consume({"deleted": 3})):
            assert cleanup_expired_notifications() == {"deleted": 3}

    def test_beat_schedule(self) -> None:
        from errands.core.config import settings
        from errands.workers.celery_app import celery_app

        schedule = celery_app.conf.beat_schedule
        escalation = schedule["process-balance-escalations-daily"]
        assert escalation["task"] == "errands.workers.tasks.process_balance_escalations"
        assert escalation["schedule"].hour == {settings.ESCALATION_HOUR}
        assert escalation["schedule"].minute == {0}
        assert schedule["cleanup-expired-notifications-daily"]["task"] == (
            "errands.workers.tasks.cleanup_expired_notifications"
        )

    def test_tasks_registered(self) -> None:
        import errands.workers.tasks  # noqa: F401
        from errands.workers.celery_app import celery_app

        assert "errands.workers.tasks.process_balance_escalations" in celery_app.tasks
        assert "errands.workers.tasks.cleanup_expired_notifications" in celery_app.tasks


# ============================================================================
# Event loop management
# ============================================================================


class TestEventLoopManagement:

    def test_get_event_loop_creates_and_closes(self) -> None:
        from errands.workers.tasks import get_event_loop

        with get_event_loop() as loop:
            assert loop.is_running() is False

        assert loop.is_closed()

    def test_run_async_executes_coroutine(self) -> None:
        from errands.workers.tasks import run_async

        async def _coro():
            return 42

        assert run_async(_coro()) == 42

    def test_run_async_closes_redis(self) -> None:
        from errands.workers.tasks import run_async

        async def _coro():
            return "done"

        with patch("errands.core.redis_client.close_redis", new_callable=AsyncMock) as mock_close:
            assert run_async(_coro()) == "done"
        mock_close.assert_awaited_once()

    def test_run_async_propagates_errors(self) -> None:
        from errands.workers.tasks import run_async

        async def _failing():
            raise ValueError("task failed")

        with pytest.raises(ValueError, match="task failed"):
            run_async(_failing())
