"""Модель окружения репозитория."""

from typing import List

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class Environment(Base):
    """
    Именованная цель деплоя внутри репозитория (staging, production, ...).

    Автодеплой включён, если задан auto_deploy_ref. required_contexts - список
    контекстов commit status, которые должны пройти перед автодеплоем.
    Активная блокировка не хранится здесь: это запрос по таблице locks.
    """

    __tablename__ = "environments"
    __table_args__ = (
        UniqueConstraint("repository_id", "name", name="uq_environments_repository_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    repository_id = Column(Integer, ForeignKey("repositories.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    default_ref = Column(String(255), nullable=False, default="master")
    auto_deploy_ref = Column(String(255), nullable=True)
    required_contexts = Column(JSON, nullable=False, default=list)
    aliases = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    repository = relationship("Repository", lazy="joined", innerjoin=True)

    @property
    def auto_deploy_enabled(self) -> bool:
        return bool(self.auto_deploy_ref)

    @property
    def required_context_names(self) -> List[str]:
        return list(self.required_contexts or [])

    def matches(self, name: str) -> bool:
        """Совпадает ли имя окружения или один из его алиасов."""
        return name == self.name or name in (self.aliases or [])

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"<Environment(id={self.id}, repository_id={self.repository_id}, name='{self.name}')>"
