"""Celery задачи: watchdog'и блокировок, автодеплоев и деплоев GitHub."""

import asyncio
from typing import Optional

from celery import Task
from core.celery.celery_app import celery_app
from core.logging.logger import logger


class WatchdogTask(Task):
    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"watchdog task failed: {exc}", task_id=task_id, task_args=list(args))


@celery_app.task(base=WatchdogTask, bind=True, name="lock_nag_watchdog")
def lock_nag_watchdog(self, lock_id: int):
    """Напомнить владельцу о блокировке, если она всё ещё активна."""
    try:
        return asyncio.run(_lock_nag_async(lock_id))
    except Exception as e:
        logger.error(f"lock_nag_watchdog failed: {e}", lock_id=lock_id)
        raise


@celery_app.task(base=WatchdogTask, bind=True, name="auto_deployment_watchdog")
def auto_deployment_watchdog(self, auto_deployment_id: int):
    """Перепроверить автодеплой, который мог застрять в pending."""
    try:
        return asyncio.run(_auto_deployment_async(auto_deployment_id))
    except Exception as e:
        logger.error(f"auto_deployment_watchdog failed: {e}", auto_deployment_id=auto_deployment_id)
        raise


@celery_app.task(base=WatchdogTask, bind=True, name="github_deployment_watchdog")
def github_deployment_watchdog(
    self,
    user_id: int,
    repository: str,
    deployment_id: int,
    attempt: int = 0,
    environment: Optional[str] = None,
    ref: Optional[str] = None,
):
    """Проверить, завершился ли деплой в GitHub; иначе перепланироваться."""
    try:
        return asyncio.run(
            _github_deployment_async(user_id, repository, deployment_id, attempt, environment, ref)
        )
    except Exception as e:
        logger.error(f"github_deployment_watchdog failed: {e}", deployment_id=deployment_id)
        raise


def _watchdog_service(session):
    from shared.services.deploy_service import DeployService
    from shared.services.watchdog_service import WatchdogService

    return WatchdogService(DeployService(session))


async def _lock_nag_async(lock_id: int) -> bool:
    from core.database.session import get_async_session

    async with get_async_session() as session:
        return await _watchdog_service(session).check_lock(lock_id)


async def _auto_deployment_async(auto_deployment_id: int) -> Optional[str]:
    from core.database.session import get_async_session

    async with get_async_session() as session:
        state = await _watchdog_service(session).check_auto_deployment(auto_deployment_id)
        return state.value if state else None


async def _github_deployment_async(
    user_id: int,
    repository: str,
    deployment_id: int,
    attempt: int,
    environment: Optional[str],
    ref: Optional[str],
) -> str:
    from core.database.session import get_async_session

    async with get_async_session() as session:
        return await _watchdog_service(session).check_github_deployment(
            user_id, repository, deployment_id, attempt, environment, ref
        )
