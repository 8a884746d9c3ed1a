"""Шаблоны личных сообщений DeployBot."""

import enum
import html
from typing import Dict, Any
from string import Template

from core.logging.logger import logger


class DeployMessageType(str, enum.Enum):
    """Тип личного сообщения."""
    # Блокировки
    LOCK_STOLEN = "lock_stolen"                               # Блокировку забрали
    LOCK_NAG = "lock_nag"                                     # Напоминание о висящей блокировке

    # Автодеплой
    AUTO_DEPLOYMENT_CREATED = "auto_deployment_created"       # Ждём статусы коммита
    AUTO_DEPLOYMENT_FAILED = "auto_deployment_failed"         # Обязательный контекст упал
    AUTO_DEPLOYMENT_LOCKED = "auto_deployment_locked"         # Окружение заблокировано
    AUTO_DEPLOYMENT_STUCK = "auto_deployment_stuck"           # Статусы так и не пришли

    # Деплои GitHub
    DEPLOYMENT_SUCCEEDED = "deployment_succeeded"
    DEPLOYMENT_FAILED = "deployment_failed"
    DEPLOYMENT_STUCK = "deployment_stuck"


class DeployMessageTemplates:
    """Менеджер шаблонов сообщений."""

    TEMPLATES: Dict[DeployMessageType, Dict[str, str]] = {
        DeployMessageType.LOCK_STOLEN: {
            "title": "Блокировка снята",
            "telegram": "🔓 <b>$thief</b> снял вашу блокировку <b>$environment</b> в <b>$repository</b> и заблокировал окружение на себя.",
        },
        DeployMessageType.LOCK_NAG: {
            "title": "Окружение всё ещё заблокировано",
            "telegram": "⏰ Вы заблокировали <b>$environment</b> в <b>$repository</b> ($locked_at). Не забудьте снять блокировку, когда закончите.",
        },
        DeployMessageType.AUTO_DEPLOYMENT_CREATED: {
            "title": "Автодеплой ожидает статусы",
            "telegram": "⏳ Коммит <code>$short_sha</code> будет задеплоен в <b>$environment</b> ($repository), как только пройдут: $required_contexts.",
        },
        DeployMessageType.AUTO_DEPLOYMENT_FAILED: {
            "title": "Автодеплой отменён",
            "telegram": "❌ Коммит <code>$short_sha</code> не будет задеплоен в <b>$environment</b> ($repository): упали проверки $failed_contexts.",
        },
        DeployMessageType.AUTO_DEPLOYMENT_LOCKED: {
            "title": "Автодеплой пропущен",
            "telegram": "🔒 Коммит <code>$short_sha</code> не задеплоен в <b>$environment</b> ($repository): окружение заблокировано пользователем <b>$locker</b>.",
        },
        DeployMessageType.AUTO_DEPLOYMENT_STUCK: {
            "title": "Автодеплой всё ещё ждёт",
            "telegram": "⚠️ Коммит <code>$short_sha</code> для <b>$environment</b> ($repository) всё ещё ждёт статусы: $missing_contexts.",
        },
        DeployMessageType.DEPLOYMENT_SUCCEEDED: {
            "title": "Деплой завершён",
            "telegram": "✅ Деплой #$deployment_id ($ref) в <b>$environment</b> ($repository) завершился успешно.",
        },
        DeployMessageType.DEPLOYMENT_FAILED: {
            "title": "Деплой упал",
            "telegram": "💥 Деплой #$deployment_id ($ref) в <b>$environment</b> ($repository) завершился со статусом <b>$state</b>.",
        },
        DeployMessageType.DEPLOYMENT_STUCK: {
            "title": "Деплой завис",
            "telegram": "🐢 Деплой #$deployment_id в <b>$environment</b> ($repository) так и не завершился (статус <b>$state</b>). Проверьте деплойер.",
        },
    }

    @classmethod
    def render(cls, message_type: DeployMessageType, variables: Dict[str, Any]) -> Dict[str, str]:
        """
        Рендеринг шаблона сообщения.

        Args:
            message_type: Тип сообщения
            variables: Переменные для подстановки

        Returns:
            Словарь с title и message
        """
        template_data = cls.TEMPLATES.get(message_type)
        if not template_data:
            logger.warning(f"Template not found for {message_type.value}")
            return {
                "title": "Уведомление",
                "message": "Содержимое уведомления недоступно."
            }

        # Шаблоны размечены HTML, значения экранируются
        escaped = {key: html.escape(str(value)) for key, value in variables.items()}
        return {
            "title": Template(template_data["title"]).safe_substitute(escaped),
            "message": Template(template_data["telegram"]).safe_substitute(escaped),
        }
