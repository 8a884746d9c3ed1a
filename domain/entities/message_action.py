"""Модель действия по кнопке в сообщении."""

import json
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Text, DateTime

from .base import Base, utcnow


class MessageAction(Base):
    """Связывает callback_id интерактивной кнопки с действием и его параметрами."""

    __tablename__ = "message_actions"

    id = Column(Integer, primary_key=True, index=True)
    callback_id = Column(String(36), unique=True, nullable=False, index=True)
    action = Column(String(100), nullable=False)
    action_params = Column(Text, nullable=False, default="{}")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def params(self) -> Dict[str, Any]:
        return json.loads(self.action_params or "{}")

    def __repr__(self) -> str:
        return f"<MessageAction(callback_id='{self.callback_id}', action='{self.action}')>"
