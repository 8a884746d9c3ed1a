"""
Сервис для работы с GitHub Deployments API.

Предоставляет:
- Проверку доступа пользователя к репозиторию
- Создание деплоев и чтение последнего деплоя окружения
- Чтение статуса деплоя (для watchdog'ов)
- Чтение файлов репозитория (конфиг .deploybot.yml)
"""
import base64
import httpx
from typing import Any, Dict, List, Optional

from core.config.settings import settings
from core.logging.logger import logger
from domain.entities.user import User
from domain.exceptions import ExternalUnavailable, InvalidRequest, Unauthorized
from shared.models.deployment import Deployment, DeploymentRequest, DeploymentState


class GitHubService:
    """Сервис для взаимодействия с GitHub API от имени пользователя."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.github_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.github_timeout_seconds
        self._transport = transport

    def _headers(self, user: User) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if user.github_token:
            headers["Authorization"] = f"token {user.github_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        user: User,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[httpx.Response]:
        """
        Выполняет запрос к GitHub с таймаутом.

        Raises:
            Unauthorized: 401/403
            InvalidRequest: прочие 4xx
            ExternalUnavailable: сетевые ошибки, таймауты, 5xx
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    params=params,
                    headers=self._headers(user),
                )
        except httpx.HTTPError as e:
            logger.error("GitHub request failed", method=method, path=path, error=str(e))
            raise ExternalUnavailable("github", str(e)) from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code in (401, 403):
            raise Unauthorized(path)
        if response.status_code >= 500:
            logger.error("GitHub server error", method=method, path=path, status_code=response.status_code)
            raise ExternalUnavailable("github", f"HTTP {response.status_code}")
        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning("GitHub rejected request", method=method, path=path,
                           status_code=response.status_code, error=message)
            raise InvalidRequest(message)
        return response

    async def access(self, user: User, repository: str) -> bool:
        """
        Есть ли у пользователя push-доступ к репозиторию.

        Любая ошибка трактуется как отказ (fail closed).
        """
        try:
            response = await self._request("GET", f"/repos/{repository}", user, allow_not_found=True)
        except Exception as e:
            logger.warning("GitHub access check failed, denying", repository=repository,
                           user=user.github_login, error=str(e))
            return False
        if response is None:
            return False
        permissions = response.json().get("permissions") or {}
        return bool(permissions.get("push") or permissions.get("admin"))

    async def create_deployment(self, user: User, request: DeploymentRequest) -> Deployment:
        """
        Создание деплоя в GitHub.

        Args:
            user: Пользователь, от имени которого создаётся деплой
            request: Запрос на деплой

        Returns:
            Созданный Deployment
        """
        payload: Dict[str, Any] = {
            "ref": request.ref,
            "environment": request.environment,
            "auto_merge": False,
        }
        if request.force:
            # Пустой список отключает проверку commit status контекстов
            payload["required_contexts"] = []

        response = await self._request("POST", f"/repos/{request.repository}/deployments", user, json=payload)
        data = response.json()
        if response.status_code != 201 or "id" not in data:
            raise InvalidRequest(data.get("message") or "GitHub did not create the deployment")

        deployment = Deployment.from_github(request.repository, data)
        logger.info(
            "GitHub deployment created",
            deployment_id=deployment.id,
            repository=request.repository,
            environment=request.environment,
            ref=request.ref,
            force=request.force,
        )
        return deployment

    async def last_deployment(self, user: User, repository: str, environment: str) -> Optional[Deployment]:
        """Последний деплой окружения (со статусом) или None."""
        response = await self._request(
            "GET",
            f"/repos/{repository}/deployments",
            user,
            params={"environment": environment, "per_page": 1},
        )
        items: List[Dict[str, Any]] = response.json()
        if not items:
            return None
        deployment = Deployment.from_github(repository, items[0])
        deployment.status = await self.deployment_status(user, repository, deployment.id)
        return deployment

    async def deployment_status(self, user: User, repository: str, deployment_id: int) -> DeploymentState:
        """Текущий статус деплоя; без статусов - pending."""
        response = await self._request(
            "GET",
            f"/repos/{repository}/deployments/{deployment_id}/statuses",
            user,
            params={"per_page": 1},
        )
        statuses: List[Dict[str, Any]] = response.json()
        if not statuses:
            return DeploymentState.PENDING
        return DeploymentState(statuses[0]["state"])

    async def contents(self, user: User, repository: str, path: str) -> Optional[str]:
        """Содержимое файла с ветки по умолчанию или None, если файла нет."""
        response = await self._request("GET", f"/repos/{repository}/contents/{path}", user, allow_not_found=True)
        if response is None:
            return None
        data = response.json()
        if data.get("encoding") == "base64":
            return base64.b64decode(data.get("content", "")).decode("utf-8")
        return data.get("content")


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or f"HTTP {response.status_code}"
    except ValueError:
        return f"HTTP {response.status_code}"


# Глобальный экземпляр сервиса
_github_service: Optional[GitHubService] = None


def get_github_service() -> GitHubService:
    global _github_service
    if _github_service is None:
        _github_service = GitHubService()
    return _github_service
