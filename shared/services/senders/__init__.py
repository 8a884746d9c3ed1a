"""Отправщики личных сообщений."""

from .telegram_sender import TelegramSender

__all__ = [
    "TelegramSender",
]
