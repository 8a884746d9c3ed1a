"""
Оркестратор деплоев DeployBot.

Внутренний API для обработчиков команд и вебхуков: авторизация,
проверки конфликтов (continuous delivery, блокировки) и отправка деплоев
в GitHub. Ожидаемые бизнес-исходы возвращаются в ServiceResult.
"""

import json
import uuid
from typing import Any, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging.logger import logger
from domain.entities.auto_deployment import AutoDeployment
from domain.entities.commit_status import CommitStatus
from domain.entities.environment import Environment
from domain.entities.lock import Lock
from domain.entities.message_action import MessageAction
from domain.entities.repository import Repository
from domain.entities.user import User
from domain.exceptions import (
    AutoDeployConflict,
    DeployError,
    EnvironmentLocked,
    InvariantViolation,
    Unauthorized,
)
from shared.models.deployment import (
    Deployment,
    DeploymentRequest,
    DeploymentResponse,
    LockResponse,
    ServiceResult,
)
from shared.services.auto_deployment_service import AutoDeploymentService
from shared.services.direct_message_service import DirectMessageService
from shared.services.environment_service import EnvironmentService
from shared.services.github_service import GitHubService, get_github_service
from shared.services.lock_service import LockService
from shared.services.repository_config_service import RepositoryConfigService
from shared.services.watchdog_scheduler import CeleryWatchdogScheduler, WatchdogKind, WatchdogScheduler
from shared.templates.notifications.base_templates import DeployMessageType


class DeployService:
    """Фасад координации деплоев."""

    def __init__(
        self,
        session: AsyncSession,
        github: Optional[GitHubService] = None,
        messages: Optional[DirectMessageService] = None,
        scheduler: Optional[WatchdogScheduler] = None,
    ):
        self.session = session
        self.github = github or get_github_service()
        self.messages = messages or DirectMessageService()
        self.scheduler = scheduler or CeleryWatchdogScheduler()

        self.locks = LockService(session, self.messages, self.scheduler)
        self.auto_deployments = AutoDeploymentService(session, self._auto_deploy, self.messages, self.scheduler)
        self.environments = EnvironmentService(session)
        self.repository_configs = RepositoryConfigService(session, self.github)

    async def authorize(self, user: User, repository: Union[str, Repository]) -> Optional[Unauthorized]:
        """None если доступ есть, иначе ошибка Unauthorized."""
        if await self.github.access(user, str(repository)):
            return None
        logger.warning("Repository access denied", user=user.github_login, repository=str(repository))
        return Unauthorized(str(repository))

    async def create_deployment(
        self,
        user: User,
        environment: Environment,
        ref: Optional[str] = None,
        skip_cd_check: bool = False,
        force: bool = False,
    ) -> ServiceResult[DeploymentResponse]:
        """
        Ручной деплой ref'а в окружение.

        Args:
            user: Инициатор
            environment: Окружение
            ref: git ref (по умолчанию environment.default_ref)
            skip_cd_check: Деплоить, даже если окружение на continuous delivery
            force: Игнорировать обязательные контексты в GitHub

        Returns:
            ServiceResult с DeploymentResponse
        """
        denied = await self.authorize(user, environment.repository)
        if denied:
            return ServiceResult.failure(denied)

        request = self._deployment_request(environment, ref, force=force)

        if environment.auto_deploy_enabled and not skip_cd_check:
            return ServiceResult.failure(AutoDeployConflict(environment.name))

        lock = await self.locks.active(environment)
        if lock is not None and (lock.user_id != user.id or lock.strong):
            logger.info("Deployment blocked by lock", environment=environment.name,
                        lock_id=lock.id, user=user.github_login)
            return ServiceResult.failure(EnvironmentLocked(lock))

        try:
            last_deployment = await self.github.last_deployment(user, request.repository, request.environment)
            deployment = await self.github.create_deployment(user, request)
        except DeployError as e:
            logger.error("Deployment dispatch failed", repository=request.repository,
                         environment=request.environment, error=e.message)
            return ServiceResult.failure(e)

        self._watch_deployment(user, deployment, request)
        return ServiceResult.success(DeploymentResponse(deployment=deployment, last_deployment=last_deployment))

    async def last_deployment(
        self,
        user: User,
        repository: Union[str, Repository],
        environment: Union[str, Environment],
    ) -> ServiceResult[Optional[Deployment]]:
        """Последний деплой окружения из GitHub."""
        denied = await self.authorize(user, repository)
        if denied:
            return ServiceResult.failure(denied)
        try:
            return ServiceResult.success(await self.github.last_deployment(user, str(repository), str(environment)))
        except DeployError as e:
            return ServiceResult.failure(e)

    async def lock_environment(
        self,
        user: User,
        environment: Environment,
        message: Optional[str] = None,
        force: bool = False,
        strong: bool = False,
    ) -> ServiceResult[LockResponse]:
        denied = await self.authorize(user, environment.repository)
        if denied:
            return ServiceResult.failure(denied)
        return await self.locks.acquire(environment, user, message=message, force=force, strong=strong)

    async def unlock_environment(self, user: User, environment: Environment) -> ServiceResult[Optional[Lock]]:
        denied = await self.authorize(user, environment.repository)
        if denied:
            return ServiceResult.failure(denied)
        return ServiceResult.success(await self.locks.release(environment))

    async def unlock_all(self, user: User) -> ServiceResult[int]:
        return ServiceResult.success(await self.locks.release_all(user))

    async def create_auto_deployment(self, environment: Environment, sha: str, user: Optional[User]) -> AutoDeployment:
        """Автодеплой коммита; невалидный запрос возвращается несохранённым с ошибками."""
        return await self.auto_deployments.create(environment, sha, user)

    async def track_context_state_change(self, status: CommitStatus) -> ServiceResult[List[AutoDeployment]]:
        return await self.auto_deployments.track_context_state_change(status)

    async def track_push(self, repository: Repository, ref: str, sha: str, user: Optional[User]) -> List[AutoDeployment]:
        """Push в ветку: автодеплой во все окружения с continuous delivery на этот ref."""
        environments = await self.environments.with_auto_deploy_ref(repository, ref)
        if not environments:
            logger.debug("Push ignored: no continuous delivery for ref", repository=repository.name, ref=ref)
        return [await self.create_auto_deployment(environment, sha, user) for environment in environments]

    async def update_repository_config(self, user: User, repository: Repository) -> ServiceResult[List[Environment]]:
        denied = await self.authorize(user, repository)
        if denied:
            return ServiceResult.failure(denied)
        return await self.repository_configs.update_repository_config(user, repository)

    async def create_message_action(self, action: Any, **params: Any) -> MessageAction:
        """Действие для интерактивной кнопки; callback_id - новый uuid."""
        message_action = MessageAction(
            callback_id=str(uuid.uuid4()),
            action=getattr(action, "__name__", str(action)),
            action_params=json.dumps(params),
        )
        self.session.add(message_action)
        await self.session.commit()
        return message_action

    async def find_message_action(self, callback_id: str) -> Optional[MessageAction]:
        result = await self.session.execute(select(MessageAction).where(MessageAction.callback_id == callback_id))
        return result.scalars().first()

    async def _auto_deploy(self, auto_deployment: AutoDeployment) -> str:
        """
        Деплой READY-автодеплоя. Вызывается только машиной состояний
        с заблокированной строкой. Автодеплой финализируется при любом исходе.

        Returns:
            "deployed", "locked" или "failed"
        """
        if not auto_deployment.ready:
            raise InvariantViolation(
                f"auto deploy called on AutoDeployment that's not ready: {auto_deployment.id}"
            )

        environment = auto_deployment.environment
        # READY не требует проверки контекстов в GitHub
        request = self._deployment_request(environment, auto_deployment.sha, force=True)
        lock: Optional[Lock] = None
        deployment: Optional[Deployment] = None
        try:
            lock = await self.locks.active(environment)
            if lock is None:
                deployment = await self.github.create_deployment(auto_deployment.deployer, request)
        except DeployError as e:
            logger.error("Auto deployment dispatch failed", auto_deployment_id=auto_deployment.id,
                         environment=environment.name, error=e.message)
        finally:
            auto_deployment.done()
            await self.session.commit()

        if lock is not None:
            logger.info("Auto deployment skipped: environment locked",
                        auto_deployment_id=auto_deployment.id, lock_id=lock.id)
            await self.messages.send(
                auto_deployment.messaging_account,
                DeployMessageType.AUTO_DEPLOYMENT_LOCKED,
                short_sha=auto_deployment.sha[:7],
                environment=environment.name,
                repository=environment.repository.name,
                locker=lock.user.github_login,
            )
            return "locked"
        if deployment is None:
            return "failed"

        logger.info("Auto deployment dispatched", auto_deployment_id=auto_deployment.id,
                    deployment_id=deployment.id)
        self._watch_deployment(auto_deployment.deployer, deployment, request)
        return "deployed"

    def _watch_deployment(self, user: User, deployment: Deployment, request: DeploymentRequest) -> None:
        self.scheduler.schedule(
            WatchdogKind.GITHUB_DEPLOYMENT,
            user.id,
            deployment.repository,
            deployment.id,
            0,
            request.environment,
            request.ref,
        )

    def _deployment_request(
        self,
        environment: Environment,
        ref: Optional[str],
        force: bool = False,
    ) -> DeploymentRequest:
        return DeploymentRequest(
            repository=environment.repository.name,
            environment=environment.name,
            ref=ref or environment.default_ref,
            force=force,
        )
