"""
Конфигурация pytest для тестов DeployBot
Фикстуры БД (in-memory SQLite) и двойники внешних сервисов
"""
import pytest
import pytest_asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from domain.entities import Base
from shared.services.deploy_service import DeployService
from shared.services.direct_message_service import DirectMessageService
from tests.utils.test_helpers import FakeGitHub, RecordingScheduler, RecordingSender, create_environment, create_user


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# =============================================================================
# Фикстуры БД
# =============================================================================

@pytest_asyncio.fixture
async def test_engine():
    """Тестовый движок: одна in-memory БД на тест."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Сессия БД для теста."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session


# =============================================================================
# Двойники внешних сервисов
# =============================================================================

@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def deploy_service(db_session, github, sender, scheduler):
    """Оркестратор с двойниками GitHub/Telegram/Celery."""
    return DeployService(
        db_session,
        github=github,
        messages=DirectMessageService(sender),
        scheduler=scheduler,
    )


# =============================================================================
# Тестовые данные
# =============================================================================

@pytest_asyncio.fixture
async def alice(db_session):
    return await create_user(db_session, "alice", telegram_id=1001)


@pytest_asyncio.fixture
async def bob(db_session):
    return await create_user(db_session, "bob", telegram_id=1002)


@pytest_asyncio.fixture
async def staging(db_session):
    return await create_environment(db_session, name="staging")


@pytest_asyncio.fixture
async def production(db_session):
    return await create_environment(db_session, name="production", aliases=["prod"])
