"""
Ошибки предметной области DeployBot.

DeployError и наследники - ожидаемые бизнес-исходы. Сервисы возвращают их
внутри ServiceResult, а не выбрасывают. InvariantViolation - ошибка
программирования (неизвестное состояние, запрещённый переход), она
выбрасывается и должна падать громко.
"""

from typing import Any, Dict, Optional


class DeployError(Exception):
    """Базовая ошибка бизнес-исхода."""

    code = "deploy_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class Unauthorized(DeployError):
    """У пользователя нет доступа к репозиторию."""

    code = "unauthorized"

    def __init__(self, repository: str):
        super().__init__(f"Access to {repository} denied")
        self.repository = repository


class EnvironmentLocked(DeployError):
    """Окружение заблокировано другим пользователем (или строгой блокировкой)."""

    code = "environment_locked"

    def __init__(self, lock: Any):
        owner = getattr(getattr(lock, "user", None), "github_login", None)
        super().__init__(f"Environment is locked by {owner or 'another user'}")
        self.lock = lock


class AutoDeployConflict(DeployError):
    """Окружение управляется continuous delivery, ручной деплой отклонён."""

    code = "auto_deploy_conflict"

    def __init__(self, environment: Any):
        super().__init__(f"Environment {environment} is configured for automatic deployments")
        self.environment = environment


class InvalidRequest(DeployError):
    """Некорректный sha/ref/пользователь."""

    code = "invalid_request"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ExternalUnavailable(DeployError):
    """GitHub или мессенджер недоступен."""

    code = "external_unavailable"

    def __init__(self, service: str, reason: Optional[str] = None):
        super().__init__(f"{service} is unavailable" + (f": {reason}" if reason else ""))
        self.service = service
        self.reason = reason


class LockNotAcquired(DeployError):
    """Блокировку не удалось создать после всех попыток."""

    code = "lock_not_acquired"

    def __init__(self, environment: Any):
        super().__init__(f"Could not lock {environment}, try again")
        self.environment = environment


class InvariantViolation(RuntimeError):
    """Нарушение инварианта: продолжать работу нельзя."""
