"""
Загрузка конфигурации репозитория (.deploybot.yml).

Формат:

    environments:
      production:
        aliases: [prod]
        default_ref: master
        continuous_delivery:
          ref: refs/heads/master
          required_contexts: [ci, security]
"""

from typing import Any, Dict, List

import yaml
from sqlalchemy.ext.asyncio import AsyncSession

from core.config.settings import settings
from core.logging.logger import logger
from domain.entities.environment import Environment
from domain.entities.repository import Repository
from domain.entities.user import User
from domain.exceptions import DeployError, InvalidRequest
from shared.models.deployment import ServiceResult
from shared.services.environment_service import EnvironmentService


DEFAULT_REF = "master"


class RepositoryConfigService:
    """Синхронизация окружений репозитория с его конфигом."""

    def __init__(self, session: AsyncSession, github=None):
        self.session = session
        self.github = github
        self.environments = EnvironmentService(session)

    async def update_repository_config(self, user: User, repository: Repository) -> ServiceResult[List[Environment]]:
        """Читает конфиг с ветки по умолчанию и применяет его."""
        try:
            raw_config = await self.github.contents(user, repository.name, settings.config_file_name)
        except DeployError as e:
            logger.warning("Failed to fetch repository config", repository=repository.name, error=e.message)
            return ServiceResult.failure(e)

        if raw_config is None:
            logger.info("Repository has no config file", repository=repository.name)
            return ServiceResult.success([], missing=True)
        return await self.configure(repository, raw_config)

    async def configure(self, repository: Repository, raw_config: str) -> ServiceResult[List[Environment]]:
        """
        Применяет конфиг к окружениям репозитория.

        Окружения, пропавшие из конфига, не удаляются (на них ссылаются
        блокировки), но у них отключается continuous delivery.
        """
        try:
            environments_config = _parse(raw_config)
        except InvalidRequest as e:
            logger.warning("Invalid repository config", repository=repository.name, error=e.reason)
            return ServiceResult.failure(e)

        existing = {environment.name: environment for environment in await self.environments.for_repository(repository)}
        configured: List[Environment] = []

        for name, config in environments_config.items():
            environment = existing.pop(name, None)
            if environment is None:
                environment = Environment(repository_id=repository.id, name=name)
                self.session.add(environment)

            delivery = config.get("continuous_delivery") or {}
            environment.default_ref = config.get("default_ref") or DEFAULT_REF
            environment.aliases = [str(alias) for alias in config.get("aliases") or []]
            environment.auto_deploy_ref = delivery.get("ref")
            environment.required_contexts = [str(context) for context in delivery.get("required_contexts") or []]
            configured.append(environment)

        for environment in existing.values():
            environment.auto_deploy_ref = None

        repository.raw_config = raw_config
        await self.session.commit()

        names = [environment.name for environment in configured]
        configured = [
            environment for environment in await self.environments.for_repository(repository)
            if environment.name in names
        ]

        logger.info(
            "Repository configured",
            repository=repository.name,
            environments=[environment.name for environment in configured],
        )
        return ServiceResult.success(configured)


def _parse(raw_config: str) -> Dict[str, Dict[str, Any]]:
    try:
        data = yaml.safe_load(raw_config) or {}
    except yaml.YAMLError as e:
        raise InvalidRequest(f"{settings.config_file_name} is not valid YAML: {e}")

    if not isinstance(data, dict):
        raise InvalidRequest(f"{settings.config_file_name} must be a mapping")

    environments = data.get("environments") or {}
    if not isinstance(environments, dict):
        raise InvalidRequest("environments must be a mapping")

    parsed: Dict[str, Dict[str, Any]] = {}
    for name, config in environments.items():
        config = config or {}
        if not isinstance(config, dict):
            raise InvalidRequest(f"environment {name} must be a mapping")
        delivery = config.get("continuous_delivery")
        if delivery is not None and not isinstance(delivery, dict):
            raise InvalidRequest(f"continuous_delivery of {name} must be a mapping")
        parsed[str(name)] = config
    return parsed
