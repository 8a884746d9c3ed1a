"""Unit-тесты Celery задач watchdog'ов и планировщика."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.celery.tasks.watchdog_tasks import (
    auto_deployment_watchdog,
    github_deployment_watchdog,
    lock_nag_watchdog,
)
from domain.entities.auto_deployment import AutoDeploymentState
from shared.services.watchdog_scheduler import CeleryWatchdogScheduler, WATCHDOG_QUEUE, WatchdogKind


class TestWatchdogTasks:

    def test_lock_nag_runs_async_body(self):
        with patch("core.celery.tasks.watchdog_tasks._lock_nag_async", new=AsyncMock(return_value=True)) as body:
            assert lock_nag_watchdog.run(5) is True
        body.assert_awaited_once_with(5)

    def test_auto_deployment_returns_state(self):
        with patch("core.celery.tasks.watchdog_tasks._auto_deployment_async",
                   new=AsyncMock(return_value="pending")) as body:
            assert auto_deployment_watchdog.run(7) == "pending"
        body.assert_awaited_once_with(7)

    def test_github_deployment_passes_arguments(self):
        with patch("core.celery.tasks.watchdog_tasks._github_deployment_async",
                   new=AsyncMock(return_value="rescheduled")) as body:
            assert github_deployment_watchdog.run(1, "acme/api", 42, 2, "staging", "main") == "rescheduled"
        body.assert_awaited_once_with(1, "acme/api", 42, 2, "staging", "main")

    def test_failures_propagate(self):
        with patch("core.celery.tasks.watchdog_tasks._lock_nag_async",
                   new=AsyncMock(side_effect=RuntimeError("db down"))):
            with pytest.raises(RuntimeError):
                lock_nag_watchdog.run(5)

    def test_auto_deployment_body_uses_watchdog_service(self):
        from core.celery.tasks import watchdog_tasks

        service = MagicMock()
        service.check_auto_deployment = AsyncMock(return_value=AutoDeploymentState.READY)
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=MagicMock())
        session_cm.__aexit__ = AsyncMock(return_value=False)

        with patch("core.database.session.get_async_session", return_value=session_cm), \
                patch.object(watchdog_tasks, "_watchdog_service", return_value=service):
            assert auto_deployment_watchdog.run(7) == "ready"
        service.check_auto_deployment.assert_awaited_once_with(7)


class TestCeleryWatchdogScheduler:

    def test_schedules_by_name_on_watchdog_queue(self):
        app = MagicMock()

        assert CeleryWatchdogScheduler(app).schedule(WatchdogKind.LOCK_NAG, 12, delay=30) is True

        app.send_task.assert_called_once_with(
            "lock_nag_watchdog", args=[12], countdown=30, queue=WATCHDOG_QUEUE,
        )

    def test_default_delay_from_settings(self):
        from core.config.settings import settings

        app = MagicMock()
        CeleryWatchdogScheduler(app).schedule(WatchdogKind.AUTO_DEPLOYMENT, 3)

        assert app.send_task.call_args.kwargs["countdown"] == settings.auto_deployment_watchdog_delay_seconds

    def test_broker_failure_does_not_raise(self):
        app = MagicMock()
        app.send_task.side_effect = ConnectionError("broker unreachable")

        assert CeleryWatchdogScheduler(app).schedule(WatchdogKind.LOCK_NAG, 12) is False
