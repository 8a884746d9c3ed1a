"""Celery приложение для DeployBot."""

from celery import Celery
from core.config.settings import settings
from core.logging.logger import logger

# Создание Celery приложения
celery_app = Celery(
    "deploybot",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=[
        "core.celery.tasks.watchdog_tasks",
    ]
)

# Конфигурация Celery
celery_app.conf.update(
    # Часовой пояс
    timezone=settings.default_timezone,
    enable_utc=True,

    # Сериализация
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Настройки задач
    task_track_started=True,
    task_time_limit=5 * 60,  # 5 минут
    task_soft_time_limit=4 * 60,  # 4 минуты

    # Watchdog'и перечитывают состояние, повторная доставка безопасна
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Настройки результатов
    result_expires=3600,  # 1 час
    result_backend_transport_options={
        'retry_policy': {
            'timeout': 5.0
        }
    },

    # Настройки worker'а
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Маршрутизация задач
    task_routes={
        'core.celery.tasks.watchdog_tasks.*': {'queue': 'watchdogs'},
        'lock_nag_watchdog': {'queue': 'watchdogs'},
        'auto_deployment_watchdog': {'queue': 'watchdogs'},
        'github_deployment_watchdog': {'queue': 'watchdogs'},
    },
)

# Логирование запуска Celery
logger.info(f"Celery application configured - broker: {settings.rabbitmq_url}, backend: {settings.redis_url}")
