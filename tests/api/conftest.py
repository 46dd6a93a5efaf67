from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.database import get_db_session
from src.api.core.dependencies import get_completion_dispatcher, get_task_catalog
from src.api.core.security import create_access_token
from src.api.main import app
from src.api.models import User
from tests.fakes import FakeTaskCatalog, RecordingDispatcher

# --- ФИКСТУРЫ, СПЕЦИФИЧНЫЕ ДЛЯ ТЕСТИРОВАНИЯ API ---


@pytest_asyncio.fixture
async def test_client(
    db_session: AsyncSession,
    catalog: FakeTaskCatalog,
    dispatcher: RecordingDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Тестовый клиент FastAPI.

    Сессия БД, каталог и отправитель событий подменяются через dependency_overrides.
    """

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_task_catalog] = lambda: catalog
    app.dependency_overrides[get_completion_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def user_auth_headers(user: User) -> dict[str, str]:
    """Заголовок Authorization с JWT тестового пользователя."""
    token = create_access_token({"user_id": user.id})
    return {"Authorization": f"Bearer {token}"}
