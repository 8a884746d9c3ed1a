"""Модель блокировки окружения."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class Lock(Base):
    """
    Эксклюзивная блокировка окружения пользователем.

    Активна, пока released_at IS NULL. Частичный уникальный индекс
    гарантирует не более одной активной блокировки на окружение.
    Строки не удаляются - остаются историей.
    """

    __tablename__ = "locks"
    __table_args__ = (
        Index(
            "uq_locks_active_environment",
            "environment_id",
            unique=True,
            postgresql_where=text("released_at IS NULL"),
            sqlite_where=text("released_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    environment_id = Column(Integer, ForeignKey("environments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    message = Column(String(500), nullable=True)
    strong = Column(Boolean, nullable=False, default=False)  # блокирует и самого владельца
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    released_at = Column(DateTime(timezone=True), nullable=True, index=True)

    environment = relationship("Environment", lazy="joined", innerjoin=True)
    user = relationship("User", lazy="joined", innerjoin=True)

    @property
    def active(self) -> bool:
        return self.released_at is None

    def release(self, now: Optional[datetime] = None) -> None:
        """Снимает блокировку (повторный вызов не меняет время снятия)."""
        if self.released_at is None:
            self.released_at = now or utcnow()

    def __repr__(self) -> str:
        return (
            f"<Lock(id={self.id}, environment_id={self.environment_id}, user_id={self.user_id}, "
            f"released_at={self.released_at})>"
        )
