"""
Watchdog'и: отложенные перепроверки того, что могло застрять.

Каждый запуск перечитывает состояние из БД/GitHub, поэтому повторная
доставка задачи безопасна.
"""

from typing import Optional

from sqlalchemy import select

from core.config.settings import settings
from core.logging.logger import logger
from domain.entities.auto_deployment import AutoDeploymentState
from domain.entities.lock import Lock
from domain.entities.user import User
from domain.exceptions import DeployError, ExternalUnavailable
from shared.models.deployment import DeploymentState
from shared.services.deploy_service import DeployService
from shared.services.watchdog_scheduler import WatchdogKind, backoff_delay
from shared.templates.notifications.base_templates import DeployMessageType


class WatchdogService:
    """Проверки блокировок, автодеплоев и деплоев GitHub."""

    def __init__(self, deploy_service: DeployService):
        self.deploy_service = deploy_service
        self.session = deploy_service.session
        self.github = deploy_service.github
        self.messages = deploy_service.messages
        self.scheduler = deploy_service.scheduler

    async def check_lock(self, lock_id: int) -> bool:
        """
        Напоминание владельцу о висящей блокировке.

        Returns:
            True если напоминание отправлено
        """
        result = await self.session.execute(
            select(Lock).where(Lock.id == lock_id).execution_options(populate_existing=True)
        )
        lock = result.scalars().first()
        if lock is None or not lock.active:
            logger.debug("Lock nag skipped: lock released", lock_id=lock_id)
            return False

        logger.info("Lock still active, nagging owner", lock_id=lock_id, user=lock.user.github_login)
        return await self.messages.send(
            lock.user.messaging_account,
            DeployMessageType.LOCK_NAG,
            environment=lock.environment.name,
            repository=lock.environment.repository.name,
            locked_at=lock.created_at.strftime("%Y-%m-%d %H:%M UTC") if lock.created_at else "",
        )

    async def check_auto_deployment(self, auto_deployment_id: int) -> Optional[AutoDeploymentState]:
        """
        Перепроверка автодеплоя под блокировкой строки.

        Returns:
            Состояние, в котором он был обработан, или None если уже DONE
        """
        auto_deployments = self.deploy_service.auto_deployments
        auto_deployment = await auto_deployments.lock_active(auto_deployment_id)
        if auto_deployment is None:
            await self.session.commit()
            logger.debug("Auto deployment watchdog: already done", auto_deployment_id=auto_deployment_id)
            return None

        state = await auto_deployments.advance(auto_deployment)
        if state is AutoDeploymentState.PENDING:
            statuses = await auto_deployments.known_statuses(auto_deployment.sha)
            missing = auto_deployments.missing_contexts(auto_deployment, statuses)
            logger.warning("Auto deployment still pending", auto_deployment_id=auto_deployment_id,
                           missing_contexts=missing)
            await self.messages.send(
                auto_deployment.messaging_account,
                DeployMessageType.AUTO_DEPLOYMENT_STUCK,
                short_sha=auto_deployment.sha[:7],
                environment=auto_deployment.environment.name,
                repository=auto_deployment.environment.repository.name,
                missing_contexts=", ".join(missing),
            )
        return state

    async def check_github_deployment(
        self,
        user_id: int,
        repository: str,
        deployment_id: int,
        attempt: int = 0,
        environment: Optional[str] = None,
        ref: Optional[str] = None,
    ) -> str:
        """
        Перепроверка статуса деплоя в GitHub.

        Returns:
            Исход проверки: статус GitHub, "rescheduled", "stuck", "unreachable" или "skipped"
        """
        result = await self.session.execute(select(User).where(User.id == user_id))
        user = result.scalars().first()
        if user is None:
            logger.warning("Deployment watchdog: user not found", user_id=user_id, deployment_id=deployment_id)
            return "skipped"

        variables = dict(
            deployment_id=deployment_id,
            repository=repository,
            environment=environment or "",
            ref=ref or "",
        )
        next_attempt = attempt + 1

        try:
            state = await self.github.deployment_status(user, repository, deployment_id)
        except ExternalUnavailable as e:
            if next_attempt >= settings.deployment_watchdog_max_attempts:
                logger.error("GitHub unreachable, giving up on deployment", deployment_id=deployment_id,
                             attempts=next_attempt, error=e.message)
                return "unreachable"
            delay = backoff_delay(attempt)
            logger.warning("GitHub unreachable, rechecking deployment later", deployment_id=deployment_id,
                           attempt=attempt, delay=delay, error=e.message)
            self._reschedule(user_id, repository, deployment_id, next_attempt, environment, ref, delay)
            return "rescheduled"
        except DeployError as e:
            logger.warning("Deployment watchdog abandoned", deployment_id=deployment_id, error=e.message)
            return "skipped"

        if state is DeploymentState.SUCCESS:
            await self.messages.send(user.messaging_account, DeployMessageType.DEPLOYMENT_SUCCEEDED, **variables)
            return state.value
        if state.resolved:
            await self.messages.send(user.messaging_account, DeployMessageType.DEPLOYMENT_FAILED,
                                     state=state.value, **variables)
            return state.value

        if next_attempt >= settings.deployment_watchdog_max_attempts:
            logger.warning("Deployment stuck", deployment_id=deployment_id, state=state.value, attempts=next_attempt)
            await self.messages.send(user.messaging_account, DeployMessageType.DEPLOYMENT_STUCK,
                                     state=state.value, **variables)
            return "stuck"

        self._reschedule(user_id, repository, deployment_id, next_attempt, environment, ref,
                         settings.deployment_watchdog_delay_seconds)
        return "rescheduled"

    def _reschedule(self, user_id, repository, deployment_id, attempt, environment, ref, delay) -> None:
        self.scheduler.schedule(
            WatchdogKind.GITHUB_DEPLOYMENT,
            user_id,
            repository,
            deployment_id,
            attempt,
            environment,
            ref,
            delay=delay,
        )
