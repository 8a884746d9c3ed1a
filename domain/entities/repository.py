"""Модель GitHub-репозитория."""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func

from .base import Base


class Repository(Base):
    """Репозиторий вида owner/name. raw_config - последний загруженный .deploybot.yml."""

    __tablename__ = "repositories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    raw_config = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def owner(self) -> str:
        return self.name.split("/", 1)[0]

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"<Repository(id={self.id}, name='{self.name}')>"
