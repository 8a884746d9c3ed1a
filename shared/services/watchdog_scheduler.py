"""Планировщик watchdog-задач поверх Celery."""

import enum
from typing import Any, Dict, Optional

from core.config.settings import settings
from core.logging.logger import logger


class WatchdogKind(str, enum.Enum):
    """Тип watchdog'а."""
    LOCK_NAG = "lock_nag"
    AUTO_DEPLOYMENT = "auto_deployment"
    GITHUB_DEPLOYMENT = "github_deployment"


TASK_NAMES: Dict[WatchdogKind, str] = {
    WatchdogKind.LOCK_NAG: "lock_nag_watchdog",
    WatchdogKind.AUTO_DEPLOYMENT: "auto_deployment_watchdog",
    WatchdogKind.GITHUB_DEPLOYMENT: "github_deployment_watchdog",
}

WATCHDOG_QUEUE = "watchdogs"


def default_delay(kind: WatchdogKind) -> float:
    """Задержка по умолчанию для типа watchdog'а (секунды)."""
    if kind is WatchdogKind.LOCK_NAG:
        return settings.lock_nag_delay_seconds
    if kind is WatchdogKind.AUTO_DEPLOYMENT:
        return settings.auto_deployment_watchdog_delay_seconds
    return settings.deployment_watchdog_delay_seconds


def backoff_delay(attempt: int) -> float:
    """Экспоненциальная задержка повторной проверки недоступного GitHub."""
    delay = settings.deployment_watchdog_delay_seconds * settings.deployment_watchdog_backoff_factor ** attempt
    return min(delay, settings.deployment_watchdog_max_delay_seconds)


class WatchdogScheduler:
    """Интерфейс планировщика: schedule(kind, *args, delay)."""

    def schedule(self, kind: WatchdogKind, *args: Any, delay: Optional[float] = None) -> bool:
        raise NotImplementedError


class CeleryWatchdogScheduler(WatchdogScheduler):
    """
    Ставит watchdog в очередь Celery с отложенным запуском (countdown).

    Задачи отправляются по имени, чтобы сервисы не импортировали модуль задач.
    Ошибка постановки в очередь не ломает исходную операцию.
    """

    def __init__(self, app=None):
        self._app = app

    @property
    def app(self):
        if self._app is None:
            from core.celery.celery_app import celery_app
            self._app = celery_app
        return self._app

    def schedule(self, kind: WatchdogKind, *args: Any, delay: Optional[float] = None) -> bool:
        countdown = default_delay(kind) if delay is None else delay
        try:
            self.app.send_task(
                TASK_NAMES[kind],
                args=list(args),
                countdown=countdown,
                queue=WATCHDOG_QUEUE,
            )
        except Exception as e:
            # Состояние уже в БД, операция не откатывается
            logger.warning(
                "Failed to schedule watchdog",
                watchdog=kind.value,
                task_args=list(args),
                error=str(e),
            )
            return False

        logger.debug("Watchdog scheduled", watchdog=kind.value, task_args=list(args), countdown=countdown)
        return True
