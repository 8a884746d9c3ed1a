"""Поиск окружений репозитория по имени или алиасу."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.entities.environment import Environment
from domain.entities.repository import Repository


class EnvironmentService:
    """Сервис окружений."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def for_repository(self, repository: Repository) -> List[Environment]:
        result = await self.session.execute(
            select(Environment)
            .where(Environment.repository_id == repository.id)
            .order_by(Environment.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find(self, repository: Repository, name: str, create: bool = False) -> Optional[Environment]:
        """
        Окружение по имени или алиасу.

        Точное совпадение имени приоритетнее алиаса. С create=True
        ненастроенное окружение создаётся с параметрами по умолчанию.
        """
        environments = await self.for_repository(repository)
        for environment in environments:
            if environment.name == name:
                return environment
        for environment in environments:
            if environment.matches(name):
                return environment

        if not create:
            return None

        environment = Environment(repository_id=repository.id, name=name, required_contexts=[], aliases=[])
        self.session.add(environment)
        await self.session.commit()
        result = await self.session.execute(
            select(Environment).where(Environment.id == environment.id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def with_auto_deploy_ref(self, repository: Repository, ref: str) -> List[Environment]:
        """Окружения с continuous delivery на указанный ref."""
        normalized = normalize_ref(ref)
        return [
            environment for environment in await self.for_repository(repository)
            if environment.auto_deploy_enabled and normalize_ref(environment.auto_deploy_ref) == normalized
        ]


def normalize_ref(ref: str) -> str:
    """master -> refs/heads/master; полные ref'ы не меняются."""
    if ref.startswith("refs/"):
        return ref
    return f"refs/heads/{ref}"
