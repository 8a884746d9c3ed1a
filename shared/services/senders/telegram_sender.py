"""Telegram отправщик личных сообщений DeployBot."""

import asyncio
from typing import Optional, Any

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError, BadRequest, Forbidden, NetworkError
from telegram.request import HTTPXRequest

from core.logging.logger import logger
from core.config.settings import settings
from shared.templates.notifications.base_templates import DeployMessageTemplates, DeployMessageType


class TelegramSender:
    """
    Отправщик личных сообщений через Telegram.

    Отправка best-effort: любые ошибки логируются и не пробрасываются,
    чтобы не ломать операцию, которую сообщение сопровождает.
    """

    def __init__(self, bot_token: Optional[str] = None, bot: Optional[Bot] = None):
        """
        Инициализация отправщика.

        Args:
            bot_token: Токен бота (опционально, по умолчанию из settings)
            bot: Готовый экземпляр Bot (для тестов)
        """
        if bot is None:
            token = bot_token or settings.telegram_bot_token
            if not token:
                raise ValueError("Telegram bot token is not configured")
            timeout = settings.telegram_timeout_seconds
            bot = Bot(
                token=token,
                request=HTTPXRequest(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    write_timeout=timeout,
                    pool_timeout=timeout,
                ),
            )

        self.bot = bot
        self.max_retries = 3
        self.retry_delay = 1  # секунды

    async def direct_message(self, account: Optional[Any], message_type: DeployMessageType, **variables: Any) -> bool:
        """
        Отправка личного сообщения пользователю.

        Args:
            account: Telegram ID получателя (None - пользователь не привязал аккаунт)
            message_type: Тип сообщения
            variables: Переменные шаблона

        Returns:
            True если отправлено успешно
        """
        if not account:
            logger.debug("Skipping direct message: no linked account", message_type=message_type.value)
            return False

        try:
            rendered = DeployMessageTemplates.render(message_type, variables)
            text = f"<b>{rendered['title']}</b>\n\n{rendered['message']}"
            sent = await self._send_with_retry(account, text)
        except Exception as e:
            logger.error(
                "Unexpected error sending direct message",
                telegram_id=account,
                message_type=message_type.value,
                error=str(e),
            )
            return False

        if sent:
            logger.info("Direct message sent", telegram_id=account, message_type=message_type.value)
        else:
            logger.error("Failed to send direct message", telegram_id=account, message_type=message_type.value)
        return sent

    async def _send_with_retry(self, telegram_id: Any, text: str) -> bool:
        """Отправка сообщения с повторными попытками на сетевых ошибках."""
        for attempt in range(self.max_retries):
            try:
                await self.bot.send_message(
                    chat_id=telegram_id,
                    text=text,
                    parse_mode=ParseMode.HTML,
                    disable_web_page_preview=True,
                )
                return True

            except (Forbidden, BadRequest) as e:
                # Бот заблокирован или неверный chat_id - не повторяем
                logger.warning("Telegram rejected message", telegram_id=telegram_id, error=str(e))
                return False

            except (NetworkError, TelegramError) as e:
                logger.warning(
                    f"Telegram error, attempt {attempt + 1}/{self.max_retries}",
                    telegram_id=telegram_id,
                    error=str(e),
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (attempt + 1))

        return False

