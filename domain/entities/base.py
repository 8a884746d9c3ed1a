"""
Базовый файл для всех доменных сущностей
Решает проблему циклических импортов
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

# Создаем общую Base для всех моделей
Base = declarative_base()


def utcnow() -> datetime:
    """Текущее время в UTC (aware)."""
    return datetime.now(timezone.utc)
