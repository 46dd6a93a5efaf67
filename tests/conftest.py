from typing import AsyncGenerator, Generator

import psycopg
import pytest
import pytest_asyncio
from alembic.config import Config
from pytest_docker.plugin import Services as DockerServices
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from alembic import command
from src.api.core.config import settings
from src.api.models import Base, CompletionEvent, HabitEnrollment, User
from src.api.repositories import CompletionEventRepository, EnrollmentRepository, UserRepository
from src.api.schemas import CatalogTask
from src.api.services import EnrollmentService, RewardNotifier
from tests.fakes import MEDITATION, READING, FakeRoster, FakeTaskCatalog, RecordingDispatcher

# URL тестовой базы данных собирается из настроек [tool.pytest.ini_options] в pyproject.toml
# Внимание: значения должны совпадать с теми, что в docker-compose.test.yml
TEST_DATABASE_URL = settings.DATABASE_URL


# --- ФИКСТУРА БЕЗОПАСНОСТИ ---


@pytest.fixture(scope="session", autouse=True)
def verify_test_environment():
    """Проверяет, что тесты запускаются в режиме разработки/тестирования."""
    assert settings.DEVELOPMENT is True, (
        "❌ ОШИБКА КОНФИГУРАЦИИ: Тесты должны запускаться с DEVELOPMENT=True. "
        "Проверьте настройки [tool.pytest.ini_options] в pyproject.toml"
    )
    assert "test" in settings.DB_NAME, f"❌ ОПАСНОСТЬ: тестовая конфигурация указывает на базу '{settings.DB_NAME}'."

    # Тестовый порт не пересекается с локальной dev-базой
    assert settings.DB_PORT == 5433, f"❌ ОШИБКА КОНФИГУРАЦИИ: Ожидался порт 5433 (тестовый), получен {settings.DB_PORT}."


# --- POSTGRESQL В DOCKER ---


@pytest.fixture(scope="session")
def docker_compose_file(pytestconfig) -> str:
    """Указывает pytest-docker путь к docker-compose файлу для тестов."""
    return str(pytestconfig.rootpath / "docker-compose.test.yml")


def is_postgres_responsive(db_url: str) -> bool:
    """Проверяет, что PostgreSQL принимает подключения."""
    try:
        conn = psycopg.connect(db_url.replace("+psycopg", ""), connect_timeout=2)
        conn.close()
        return True
    except psycopg.OperationalError:
        return False


@pytest.fixture(scope="session")
def postgres_service(docker_compose_file: str, docker_services: DockerServices) -> None:
    """Запускает сервис 'test-db' и ждет его готовности."""
    docker_services.wait_until_responsive(
        timeout=30.0,
        pause=1.0,
        check=lambda: is_postgres_responsive(TEST_DATABASE_URL),
    )


@pytest.fixture(scope="session", autouse=True)
def apply_migrations(pytestconfig, postgres_service: None) -> Generator[None, None, None]:
    """Схема тестовой базы строится миграциями Alembic, а не по моделям."""
    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(pytestconfig.rootpath / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)

    command.upgrade(alembic_cfg, "head")
    yield
    command.downgrade(alembic_cfg, "base")


# --- БАЗА ДАННЫХ ---


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Движок на время одного теста.

    NullPool: соединения не переживают event loop теста.
    """
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Фабрика сессий с теми же параметрами, что и в приложении."""
    return async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(
    async_engine: AsyncEngine, db_session_factory: async_sessionmaker[AsyncSession]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Сессия для теста.

    Сервисы фиксируют транзакции сами, поэтому откат в конце теста ничего бы не очистил:
    после закрытия сессии таблицы очищаются целиком.
    """
    async with db_session_factory() as session:
        yield session

    tables = ", ".join(table.name for table in Base.metadata.sorted_tables)

    async with async_engine.begin() as connection:
        await connection.execute(text(f"TRUNCATE {tables} RESTART IDENTITY CASCADE"))


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    """Активный пользователь в UTC без наград."""
    test_user = User(username="tester", timezone="UTC", is_active=True, reward_units=0)
    db_session.add(test_user)
    await db_session.commit()
    return test_user


# --- ВНЕШНИЕ СЕРВИСЫ ---


@pytest.fixture
def catalog() -> FakeTaskCatalog:
    """
    Две программы:
    - MEDITATION: три задачи, по одной на дни 1, 2 и 3;
    - READING: одна задача, назначенная на дни 1 и 2.
    """
    return FakeTaskCatalog(
        {
            MEDITATION: [
                CatalogTask(task_id="breathe", days=[1]),
                CatalogTask(task_id="body-scan", days=[2]),
                CatalogTask(task_id="walk", days=[3]),
            ],
            READING: [CatalogTask(task_id="read-10-pages", days=[1, 2])],
        }
    )


@pytest.fixture
def roster() -> FakeRoster:
    return FakeRoster()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


# --- СЕРВИСЫ ---


@pytest.fixture
def enrollment_repository() -> EnrollmentRepository:
    return EnrollmentRepository(HabitEnrollment)


@pytest.fixture
def event_repository() -> CompletionEventRepository:
    return CompletionEventRepository(CompletionEvent)


@pytest.fixture
def enrollment_service(
    enrollment_repository: EnrollmentRepository,
    event_repository: CompletionEventRepository,
    catalog: FakeTaskCatalog,
    dispatcher: RecordingDispatcher,
) -> EnrollmentService:
    return EnrollmentService(
        enrollment_repository=enrollment_repository,
        user_repository=UserRepository(User),
        event_repository=event_repository,
        catalog=catalog,
        dispatcher=dispatcher,
    )


@pytest.fixture
def reward_notifier(event_repository: CompletionEventRepository, roster: FakeRoster) -> RewardNotifier:
    return RewardNotifier(event_repository=event_repository, user_repository=UserRepository(User), roster=roster)
