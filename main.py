#!/usr/bin/env python3
"""
Служебная точка входа DeployBot.

    python main.py check     - проверить настройки и подключение к БД
    python main.py init-db   - создать схему БД по моделям (dev/тесты)

Воркер watchdog'ов запускается отдельно:
    celery -A core.celery.celery_app worker -Q watchdogs
"""

import asyncio
import sys


async def _check():
    from sqlalchemy import text
    from core.database.session import get_async_session, close_database

    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
        print("✅ База данных доступна")
    finally:
        await close_database()


async def _init_db():
    from core.database.session import db_manager

    try:
        await db_manager.create_schema()
        print("✅ Схема БД создана")
    finally:
        await db_manager.close()


def main(argv=None):
    """Основная функция запуска."""
    argv = sys.argv[1:] if argv is None else argv
    command = argv[0] if argv else "check"

    from core.config.settings import settings
    from core.logging.logger import setup_logging

    setup_logging()
    print(f"🚀 {settings.app_name} ({settings.environment})")

    if command == "check":
        asyncio.run(_check())
    elif command == "init-db":
        asyncio.run(_init_db())
    else:
        print(f"❌ Неизвестная команда: {command}")
        print(__doc__)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
