"""
Сервис автодеплоев.

Автодеплой ждёт, пока все обязательные контексты commit status коммита
станут success, и тогда запускает деплой. Каждая активная строка
обрабатывается в своей транзакции под SELECT ... FOR UPDATE, поэтому
повторные и конкурентные события статусов запускают деплой не более
одного раза.
"""

from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging.logger import logger
from domain.entities.auto_deployment import (
    AutoDeployment,
    AutoDeploymentState,
    compute_state,
    latest_statuses,
    missing_contexts,
)
from domain.entities.commit_status import CommitStatus, CommitStatusState
from domain.entities.environment import Environment
from domain.entities.user import User
from domain.exceptions import InvalidRequest, InvariantViolation
from shared.models.deployment import ServiceResult
from shared.services.direct_message_service import DirectMessageService
from shared.services.watchdog_scheduler import WatchdogKind, WatchdogScheduler
from shared.templates.notifications.base_templates import DeployMessageType


AutoDeployCallback = Callable[[AutoDeployment], Awaitable[str]]


class AutoDeploymentService:
    """Машина состояний автодеплоя."""

    def __init__(
        self,
        session: AsyncSession,
        auto_deploy: AutoDeployCallback,
        messages: Optional[DirectMessageService] = None,
        scheduler: Optional[WatchdogScheduler] = None,
    ):
        """
        Args:
            session: Сессия БД
            auto_deploy: Запуск деплоя READY-автодеплоя; обязан финализировать его (DONE)
            messages: Личные сообщения
            scheduler: Планировщик watchdog'ов
        """
        self.session = session
        self.auto_deploy = auto_deploy
        self.messages = messages or DirectMessageService()
        self.scheduler = scheduler

    async def known_statuses(self, sha: str) -> List[CommitStatus]:
        """Все известные статусы коммита в порядке поступления."""
        result = await self.session.execute(
            select(CommitStatus).where(CommitStatus.sha == sha).order_by(CommitStatus.id)
        )
        return list(result.scalars().all())

    async def lock_active(self, auto_deployment_id: int) -> Optional[AutoDeployment]:
        """Активный автодеплой под блокировкой строки или None, если уже DONE."""
        result = await self.session.execute(
            select(AutoDeployment)
            .where(
                AutoDeployment.id == auto_deployment_id,
                AutoDeployment.state != AutoDeploymentState.DONE.value,
            )
            .with_for_update(of=AutoDeployment)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def create(self, environment: Environment, sha: str, user: Optional[User]) -> AutoDeployment:
        """
        Создание автодеплоя коммита в окружение.

        Невалидный запрос не сохраняется: возвращается объект с validation_errors.
        Начальное состояние вычисляется по уже известным статусам коммита.
        """
        auto_deployment = AutoDeployment(
            environment=environment,
            deployer=user,
            sha=sha,
            state=AutoDeploymentState.PENDING.value,
        )
        errors = auto_deployment.validate()
        if errors:
            logger.warning("Invalid auto deployment request", sha=sha, errors=errors)
            return auto_deployment

        statuses = await self.known_statuses(sha)
        initial = compute_state(statuses, environment.required_context_names)
        auto_deployment.transition_to(initial)

        self.session.add(auto_deployment)
        await self.session.commit()
        logger.info(
            "Auto deployment created",
            auto_deployment_id=auto_deployment.id,
            environment=environment.name,
            sha=sha,
            state=initial.value,
        )

        if initial is AutoDeploymentState.PENDING:
            await self.messages.send(
                auto_deployment.messaging_account,
                DeployMessageType.AUTO_DEPLOYMENT_CREATED,
                short_sha=sha[:7],
                environment=environment.name,
                repository=environment.repository.name,
                required_contexts=", ".join(environment.required_context_names),
            )
            if self.scheduler is not None:
                self.scheduler.schedule(WatchdogKind.AUTO_DEPLOYMENT, auto_deployment.id)
            return auto_deployment

        locked = await self.lock_active(auto_deployment.id)
        if locked is None:
            await self.session.commit()
            return auto_deployment
        await self.advance(locked)
        return locked

    async def track_context_state_change(self, status: CommitStatus) -> ServiceResult[List[AutoDeployment]]:
        """
        Запись нового статуса коммита и продвижение активных автодеплоев этого sha.

        Args:
            status: Несохранённый CommitStatus (sha, context, state)

        Returns:
            ServiceResult со списком обработанных автодеплоев
        """
        try:
            status.state = CommitStatusState(status.state).value
        except ValueError:
            return ServiceResult.failure(InvalidRequest(f"Unknown commit status state: {status.state}"))
        if not status.sha or not status.context:
            return ServiceResult.failure(InvalidRequest("sha and context are required"))

        sha = status.sha
        self.session.add(status)
        await self.session.commit()
        logger.info("Commit status recorded", sha=sha, context=status.context, state=status.state)

        result = await self.session.execute(
            select(AutoDeployment.id)
            .where(AutoDeployment.sha == sha, AutoDeployment.state != AutoDeploymentState.DONE.value)
            .order_by(AutoDeployment.id)
        )
        candidate_ids = list(result.scalars().all())

        processed: List[AutoDeployment] = []
        for auto_deployment_id in candidate_ids:
            auto_deployment = await self.lock_active(auto_deployment_id)
            if auto_deployment is None:
                # Уже финализирован конкурентным обработчиком
                await self.session.commit()
                continue
            await self.advance(auto_deployment)
            processed.append(auto_deployment)

        return ServiceResult.success(processed)

    async def advance(self, auto_deployment: AutoDeployment) -> AutoDeploymentState:
        """
        Продвигает автодеплой, строка которого уже заблокирована в текущей транзакции.
        Транзакция завершается здесь.

        Returns:
            Состояние, в котором автодеплой был обработан (PENDING, READY или FAILED)
        """
        statuses = await self.known_statuses(auto_deployment.sha)
        if auto_deployment.state_enum is AutoDeploymentState.PENDING:
            computed = compute_state(statuses, auto_deployment.environment.required_context_names)
            auto_deployment.transition_to(computed)

        state = auto_deployment.state_enum
        if state is AutoDeploymentState.READY:
            await self.auto_deploy(auto_deployment)
        elif state is AutoDeploymentState.FAILED:
            auto_deployment.done()
            await self.session.commit()
            await self._notify_failed(auto_deployment, statuses)
        elif state is AutoDeploymentState.PENDING:
            await self.session.commit()
        else:
            raise InvariantViolation(f"Unhandled {state.value} state for AutoDeployment {auto_deployment.id}")

        logger.info("Auto deployment advanced", auto_deployment_id=auto_deployment.id, state=state.value)
        return state

    def missing_contexts(self, auto_deployment: AutoDeployment, statuses: List[CommitStatus]) -> List[str]:
        return missing_contexts(statuses, auto_deployment.environment.required_context_names)

    async def _notify_failed(self, auto_deployment: AutoDeployment, statuses: List[CommitStatus]) -> None:
        latest = latest_statuses(statuses)
        failed = [
            context for context in auto_deployment.environment.required_context_names
            if context in latest and latest[context].state in (
                CommitStatusState.FAILURE.value, CommitStatusState.ERROR.value
            )
        ]
        await self.messages.send(
            auto_deployment.messaging_account,
            DeployMessageType.AUTO_DEPLOYMENT_FAILED,
            short_sha=auto_deployment.sha[:7],
            environment=auto_deployment.environment.name,
            repository=auto_deployment.environment.repository.name,
            failed_contexts=", ".join(failed),
        )
