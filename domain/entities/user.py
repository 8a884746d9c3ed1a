"""Модель пользователя."""

from sqlalchemy import Column, Integer, String, DateTime, BigInteger
from sqlalchemy.sql import func

from .base import Base


class User(Base):
    """
    Пользователь DeployBot.

    Субъект авторизации (через GitHub-токен) и владелец блокировок/деплоев.
    telegram_id - привязанный аккаунт мессенджера для личных сообщений.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    github_login = Column(String(255), unique=True, nullable=False, index=True)
    github_token = Column(String(255), nullable=True)
    telegram_id = Column(BigInteger, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def messaging_account(self):
        """Аккаунт для личных сообщений (может отсутствовать)."""
        return self.telegram_id

    def __str__(self) -> str:
        return self.github_login

    def __repr__(self) -> str:
        return f"<User(id={self.id}, github_login='{self.github_login}', telegram_id={self.telegram_id})>"
