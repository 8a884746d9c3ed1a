"""Модель автодеплоя и его машина состояний."""

import enum
import re
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from domain.exceptions import InvariantViolation
from .base import Base, utcnow
from .commit_status import CommitStatus, CommitStatusState


SHA_PATTERN = re.compile(r"^[0-9a-f]{4,40}$")


class AutoDeploymentState(str, enum.Enum):
    """Состояние автодеплоя."""
    PENDING = "pending"   # ждём статусы коммита
    READY = "ready"       # все обязательные контексты зелёные
    FAILED = "failed"     # какой-то обязательный контекст упал
    DONE = "done"         # финальное состояние


ALLOWED_TRANSITIONS: Dict[AutoDeploymentState, FrozenSet[AutoDeploymentState]] = {
    AutoDeploymentState.PENDING: frozenset({AutoDeploymentState.READY, AutoDeploymentState.FAILED}),
    AutoDeploymentState.READY: frozenset({AutoDeploymentState.DONE}),
    AutoDeploymentState.FAILED: frozenset({AutoDeploymentState.DONE}),
    AutoDeploymentState.DONE: frozenset(),
}

_FAILING_STATES = {CommitStatusState.FAILURE.value, CommitStatusState.ERROR.value}


def latest_statuses(statuses: Iterable[CommitStatus]) -> Dict[str, CommitStatus]:
    """Последний статус по каждому контексту. statuses - в порядке поступления."""
    latest: Dict[str, CommitStatus] = {}
    for status in statuses:
        latest[status.context] = status
    return latest


def compute_state(
    statuses: Iterable[CommitStatus],
    required_contexts: Sequence[str],
) -> AutoDeploymentState:
    """
    Вычисляет состояние по известным статусам коммита.

    FAILED - если любой обязательный контекст в failure/error,
    READY - если все обязательные контексты в success,
    иначе PENDING. Пустой список обязательных контекстов - сразу READY.
    """
    latest = latest_statuses(statuses)
    states = [latest[context].state if context in latest else None for context in required_contexts]

    if any(state in _FAILING_STATES for state in states):
        return AutoDeploymentState.FAILED
    if all(state == CommitStatusState.SUCCESS.value for state in states):
        return AutoDeploymentState.READY
    return AutoDeploymentState.PENDING


def missing_contexts(statuses: Iterable[CommitStatus], required_contexts: Sequence[str]) -> List[str]:
    """Обязательные контексты, ещё не сообщившие success."""
    latest = latest_statuses(statuses)
    return [
        context for context in required_contexts
        if context not in latest or latest[context].state != CommitStatusState.SUCCESS.value
    ]


class AutoDeployment(Base):
    """
    Запрос на автоматический деплой коммита в окружение.

    Активен, пока не DONE. Переходы монотонны:
    PENDING -> READY | FAILED -> DONE.
    """

    __tablename__ = "auto_deployments"

    id = Column(Integer, primary_key=True, index=True)
    environment_id = Column(Integer, ForeignKey("environments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sha = Column(String(40), nullable=False, index=True)
    state = Column(String(20), nullable=False, default=AutoDeploymentState.PENDING.value, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    done_at = Column(DateTime(timezone=True), nullable=True)

    environment = relationship("Environment", lazy="joined", innerjoin=True)
    deployer = relationship("User", lazy="joined", innerjoin=True)

    # Ошибки валидации несохранённого объекта (не колонка)
    validation_errors: Sequence[str] = ()

    @property
    def state_enum(self) -> AutoDeploymentState:
        try:
            return AutoDeploymentState(self.state)
        except ValueError:
            raise InvariantViolation(f"Unhandled {self.state} state for AutoDeployment {self.id}")

    @property
    def active(self) -> bool:
        return self.state_enum is not AutoDeploymentState.DONE

    @property
    def ready(self) -> bool:
        return self.state_enum is AutoDeploymentState.READY

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors

    @property
    def messaging_account(self):
        return self.deployer.messaging_account if self.deployer else None

    def validate(self) -> List[str]:
        """Проверяет sha и пользователя; возвращает список ошибок."""
        errors = []
        if not self.sha or not SHA_PATTERN.match(self.sha):
            errors.append("sha must be 4-40 lowercase hex characters")
        if self.deployer is None and self.user_id is None:
            errors.append("user is required")
        if self.environment is None and self.environment_id is None:
            errors.append("environment is required")
        self.validation_errors = tuple(errors)
        return errors

    def transition_to(self, new_state: AutoDeploymentState, now: Optional[datetime] = None) -> bool:
        """
        Переводит в новое состояние. Повтор текущего состояния - no-op (False).
        Запрещённый переход - InvariantViolation.
        """
        current = self.state_enum
        if new_state is current:
            return False
        if new_state not in ALLOWED_TRANSITIONS[current]:
            raise InvariantViolation(
                f"AutoDeployment {self.id}: transition {current.value} -> {new_state.value} is not allowed"
            )
        self.state = new_state.value
        if new_state is AutoDeploymentState.DONE:
            self.done_at = now or utcnow()
        return True

    def done(self, now: Optional[datetime] = None) -> None:
        """Финализирует автодеплой (идемпотентно)."""
        if self.state_enum is AutoDeploymentState.PENDING:
            raise InvariantViolation(f"AutoDeployment {self.id} can't be finalized while pending")
        self.transition_to(AutoDeploymentState.DONE, now=now)

    def __repr__(self) -> str:
        return f"<AutoDeployment(id={self.id}, sha='{(self.sha or '')[:7]}', state='{self.state}')>"
