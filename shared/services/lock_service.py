"""
Сервис блокировок окружений.

Не более одной активной блокировки на окружение. Гарантия держится на
частичном уникальном индексе uq_locks_active_environment, чтение текущей
блокировки идёт через SELECT ... FOR UPDATE. Проигравший гонку получает
IntegrityError, откатывается и перечитывает состояние.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config.settings import settings
from core.logging.logger import logger
from domain.entities.environment import Environment
from domain.entities.lock import Lock
from domain.entities.user import User
from domain.exceptions import EnvironmentLocked, LockNotAcquired
from shared.models.deployment import LockResponse, ServiceResult
from shared.services.direct_message_service import DirectMessageService
from shared.services.watchdog_scheduler import WatchdogKind, WatchdogScheduler
from shared.templates.notifications.base_templates import DeployMessageType


class LockService:
    """Захват и снятие блокировок окружений."""

    def __init__(
        self,
        session: AsyncSession,
        messages: Optional[DirectMessageService] = None,
        scheduler: Optional[WatchdogScheduler] = None,
        max_attempts: Optional[int] = None,
    ):
        self.session = session
        self.messages = messages or DirectMessageService()
        self.scheduler = scheduler
        self.max_attempts = max_attempts or settings.lock_acquire_retries

    def _active_query(self, environment_id: int):
        return (
            select(Lock)
            .where(Lock.environment_id == environment_id, Lock.released_at.is_(None))
            .execution_options(populate_existing=True)
        )

    async def active(self, environment: Environment) -> Optional[Lock]:
        """Текущая активная блокировка окружения (свежее чтение из БД)."""
        result = await self.session.execute(self._active_query(environment.id))
        return result.scalars().first()

    async def _active_for_update(self, environment_id: int) -> Optional[Lock]:
        result = await self.session.execute(
            self._active_query(environment_id).with_for_update(of=Lock)
        )
        return result.scalars().first()

    async def _get(self, lock_id: int) -> Optional[Lock]:
        result = await self.session.execute(
            select(Lock).where(Lock.id == lock_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _reload(self, environment_id: int, user_id: int) -> None:
        """Перечитывает окружение и пользователя вызывающего после rollback."""
        await self.session.execute(
            select(Environment).where(Environment.id == environment_id).execution_options(populate_existing=True)
        )
        await self.session.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )

    async def acquire(
        self,
        environment: Environment,
        user: User,
        message: Optional[str] = None,
        force: bool = False,
        strong: bool = False,
    ) -> ServiceResult[LockResponse]:
        """
        Блокирует окружение на пользователя.

        - своя активная блокировка: возвращается как есть (идемпотентно)
        - чужая и force=False: ошибка EnvironmentLocked
        - чужая и force=True: старая снимается, владелец получает сообщение

        Args:
            environment: Окружение
            user: Пользователь
            message: Комментарий к блокировке
            force: Забрать чужую блокировку
            strong: Строгая блокировка (не даёт деплоить и владельцу)

        Returns:
            ServiceResult с LockResponse; meta["created"] - создана ли новая блокировка
        """
        # После rollback объекты сессии истекают, поэтому работаем по id
        environment_id = environment.id
        environment_name = environment.name
        user_id = user.id

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._try_acquire(environment_id, user_id, message, force, strong)
            except IntegrityError:
                await self.session.rollback()
                await self._reload(environment_id, user_id)
                logger.warning(
                    "Lost lock race, re-reading",
                    environment_id=environment_id,
                    user_id=user_id,
                    attempt=attempt,
                )

        logger.error("Lock not acquired", environment_id=environment_id, user_id=user_id,
                     attempts=self.max_attempts)
        return ServiceResult.failure(LockNotAcquired(environment_name))

    async def _try_acquire(
        self,
        environment_id: int,
        user_id: int,
        message: Optional[str],
        force: bool,
        strong: bool,
    ) -> ServiceResult[LockResponse]:
        current = await self._active_for_update(environment_id)
        stolen: Optional[Lock] = None

        if current is not None:
            if current.user_id == user_id:
                await self.session.commit()
                return ServiceResult.success(LockResponse(lock=current), created=False)
            if not force:
                await self.session.commit()
                return ServiceResult.failure(EnvironmentLocked(current))
            # Старая блокировка снимается до вставки новой (частичный индекс)
            current.release()
            await self.session.flush()
            stolen = current

        lock = Lock(environment_id=environment_id, user_id=user_id, message=message, strong=strong)
        self.session.add(lock)
        await self.session.commit()

        lock = await self._get(lock.id)
        logger.info(
            "Environment locked",
            lock_id=lock.id,
            environment=lock.environment.name,
            repository=lock.environment.repository.name,
            user=lock.user.github_login,
            strong=strong,
            stolen_from=stolen.user.github_login if stolen else None,
        )

        if stolen is not None:
            await self.messages.send(
                stolen.user.messaging_account,
                DeployMessageType.LOCK_STOLEN,
                thief=lock.user.github_login,
                environment=lock.environment.name,
                repository=lock.environment.repository.name,
            )
        if self.scheduler is not None:
            self.scheduler.schedule(WatchdogKind.LOCK_NAG, lock.id)

        return ServiceResult.success(LockResponse(lock=lock, stolen=stolen), created=True)

    async def release(self, environment: Environment) -> Optional[Lock]:
        """Снимает активную блокировку окружения. Возвращает снятую или None."""
        lock = await self._active_for_update(environment.id)
        if lock is None:
            await self.session.commit()
            return None

        lock.release()
        await self.session.commit()
        logger.info("Environment unlocked", lock_id=lock.id, environment=lock.environment.name,
                    user=lock.user.github_login)
        return lock

    async def release_all(self, user: User) -> int:
        """Снимает все активные блокировки пользователя. Возвращает их количество."""
        user_id = user.id
        result = await self.session.execute(
            select(Lock.id).where(Lock.user_id == user_id, Lock.released_at.is_(None)).order_by(Lock.id)
        )
        lock_ids = list(result.scalars().all())

        released = 0
        for lock_id in lock_ids:
            locked = await self.session.execute(
                select(Lock)
                .where(Lock.id == lock_id, Lock.released_at.is_(None))
                .with_for_update(of=Lock)
                .execution_options(populate_existing=True)
            )
            lock = locked.scalars().first()
            if lock is not None:
                lock.release()
                released += 1
            await self.session.commit()

        logger.info("All user locks released", user_id=user_id, released=released)
        return released
