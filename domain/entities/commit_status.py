"""Модель статуса коммита (внешнее событие GitHub)."""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Index

from .base import Base, utcnow


class CommitStatusState(str, enum.Enum):
    """Состояние контекста commit status."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


class CommitStatus(Base):
    """
    Лог статусов коммитов. Для пары (sha, context) актуальна последняя запись.
    """

    __tablename__ = "commit_statuses"
    __table_args__ = (
        Index("ix_commit_statuses_sha_context", "sha", "context"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sha = Column(String(40), nullable=False, index=True)
    context = Column(String(255), nullable=False)
    state = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def state_enum(self) -> CommitStatusState:
        return CommitStatusState(self.state)

    def __repr__(self) -> str:
        return f"<CommitStatus(sha='{self.sha[:7]}', context='{self.context}', state='{self.state}')>"
