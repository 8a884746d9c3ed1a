"""Модели данных для деплоев (значения, не сохраняются в БД)."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

from domain.exceptions import DeployError


T = TypeVar("T")


class DeploymentState(str, Enum):
    """Статусы деплоя в GitHub."""
    PENDING = "pending"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"
    INACTIVE = "inactive"

    @property
    def resolved(self) -> bool:
        return self in (
            DeploymentState.SUCCESS,
            DeploymentState.FAILURE,
            DeploymentState.ERROR,
            DeploymentState.INACTIVE,
        )


@dataclass(frozen=True)
class DeploymentRequest:
    """Запрос на создание деплоя в GitHub."""

    repository: str
    environment: str
    ref: str
    force: bool = False


@dataclass
class Deployment:
    """Деплой в представлении GitHub (источник истины - GitHub)."""

    id: int
    repository: str
    environment: str
    ref: Optional[str] = None
    sha: Optional[str] = None
    creator: Optional[str] = None
    status: DeploymentState = DeploymentState.PENDING
    url: Optional[str] = None

    @classmethod
    def from_github(cls, repository: str, payload: Dict[str, Any]) -> "Deployment":
        return cls(
            id=payload["id"],
            repository=repository,
            environment=payload.get("environment", ""),
            ref=payload.get("ref"),
            sha=payload.get("sha"),
            creator=(payload.get("creator") or {}).get("login"),
            url=payload.get("url"),
        )


@dataclass
class LockResponse:
    """Результат блокировки: новая блокировка и украденная (если была)."""

    lock: Any
    stolen: Optional[Any] = None


@dataclass
class DeploymentResponse:
    """Результат ручного деплоя: новый деплой и предыдущий известный."""

    deployment: Deployment
    last_deployment: Optional[Deployment] = None


@dataclass
class ServiceResult(Generic[T]):
    """
    Результат операции сервиса.

    Ожидаемые бизнес-исходы (заблокировано, нет доступа, конфликт CD)
    возвращаются в error, а не выбрасываются.
    """

    value: Optional[T] = None
    error: Optional[DeployError] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None, **meta: Any) -> "ServiceResult[T]":
        return cls(value=value, meta=meta)

    @classmethod
    def failure(cls, error: DeployError, **meta: Any) -> "ServiceResult[T]":
        return cls(error=error, meta=meta)

    def unwrap(self) -> Optional[T]:
        """Значение или исходная ошибка (для вызывающих, предпочитающих исключения)."""
        if self.error is not None:
            raise self.error
        return self.value
