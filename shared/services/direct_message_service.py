"""Личные сообщения пользователям (best-effort)."""

from typing import Any, Optional

from core.logging.logger import logger
from shared.templates.notifications.base_templates import DeployMessageType


class DirectMessageService:
    """
    Обёртка над отправщиком сообщений.

    Никогда не выбрасывает исключений: сообщение сопровождает операцию
    и не должно её ломать.
    """

    def __init__(self, sender=None):
        self._sender = sender

    def _get_sender(self):
        if self._sender is None:
            from shared.services.senders.telegram_sender import TelegramSender
            self._sender = TelegramSender()
        return self._sender

    async def send(self, account: Optional[Any], message_type: DeployMessageType, **variables: Any) -> bool:
        if not account:
            return False
        try:
            return await self._get_sender().direct_message(account, message_type, **variables)
        except Exception as e:
            logger.error(
                "Direct message dispatch failed",
                message_type=message_type.value,
                account=account,
                error=str(e),
            )
            return False
