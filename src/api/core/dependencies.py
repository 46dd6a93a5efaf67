"""Зависимости FastAPI: сессия БД, репозитории, сервисы, внешние клиенты и текущий пользователь."""

from typing import Annotated, AsyncGenerator

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.clients import TaskCatalog, TaskCatalogClient
from src.api.models import CompletionEvent, HabitEnrollment, User
from src.api.repositories import CompletionEventRepository, EnrollmentRepository, UserRepository
from src.api.services import CeleryCompletionDispatcher, CompletionDispatcher, EnrollmentService

from .database import get_db_session
from .exceptions import ForbiddenException, UnauthorizedException
from .logging import api_log as log
from .security import verify_and_decode_token

# --- Типизация для инъекции зависимостей ---

# Сессия базы данных
DBSession = Annotated[AsyncSession, Depends(get_db_session)]


# --- Фабрики Репозиториев ---


def get_user_repository() -> UserRepository:
    return UserRepository(User)


def get_enrollment_repository() -> EnrollmentRepository:
    return EnrollmentRepository(HabitEnrollment)


def get_completion_event_repository() -> CompletionEventRepository:
    return CompletionEventRepository(CompletionEvent)


# Типизация для репозиториев
UserRepo = Annotated[UserRepository, Depends(get_user_repository)]
EnrollmentRepo = Annotated[EnrollmentRepository, Depends(get_enrollment_repository)]
CompletionEventRepo = Annotated[CompletionEventRepository, Depends(get_completion_event_repository)]


# --- Внешние клиенты ---


async def get_task_catalog() -> AsyncGenerator[TaskCatalog, None]:
    """HTTP-клиент каталога на время запроса."""
    client = TaskCatalogClient()
    try:
        yield client
    finally:
        await client.close()


def get_completion_dispatcher() -> CompletionDispatcher:
    return CeleryCompletionDispatcher()


Catalog = Annotated[TaskCatalog, Depends(get_task_catalog)]
Dispatcher = Annotated[CompletionDispatcher, Depends(get_completion_dispatcher)]


# --- Фабрики Сервисов ---


# EnrollmentService зависит от трех репозиториев, каталога и отправителя событий
def get_enrollment_service(
    repository: EnrollmentRepo,
    user_repository: UserRepo,
    event_repository: CompletionEventRepo,
    catalog: Catalog,
    dispatcher: Dispatcher,
) -> EnrollmentService:
    return EnrollmentService(
        enrollment_repository=repository,
        user_repository=user_repository,
        event_repository=event_repository,
        catalog=catalog,
        dispatcher=dispatcher,
    )


# Типизация для сервисов
EnrollmentSvc = Annotated[EnrollmentService, Depends(get_enrollment_service)]


# --- Зависимость для получения текущего пользователя ---

# Схема для JWT Bearer токена
bearer_schema = HTTPBearer(auto_error=False)


async def get_current_user(
    db_session: DBSession,
    user_repo: UserRepo,
    token_credentials: HTTPAuthorizationCredentials | None = Security(bearer_schema),
) -> User:
    """
    Получает текущего пользователя по JWT, выпущенному сервисом идентификации.

    Args:
        db_session (AsyncSession): Асинхронная сессия базы данных.
        user_repo (UserRepo): Экземпляр репозитория пользователей.
        token_credentials (HTTPAuthorizationCredentials | None): Учетные данные из заголовка Authorization.

    Returns:
        User: Экземпляр модели текущего пользователя.

    Raises:
        UnauthorizedException: Если токен отсутствует, невалиден или пользователь не найден.
        ForbiddenException: Если пользователь неактивен.
    """
    if token_credentials is None or not token_credentials.credentials:
        log.debug("Отсутствует токен авторизации.")
        raise UnauthorizedException(message="Токен авторизации не предоставлен.")

    # UnauthorizedException будет выброшен из verify_and_decode_token в случае проблем
    token_payload = verify_and_decode_token(token_credentials.credentials)

    user = await user_repo.get_by_id(db_session, obj_id=token_payload.user_id)

    if user is None:
        log.warning(f"Пользователь с ID {token_payload.user_id} из токена не найден в БД.")
        raise UnauthorizedException(message="Пользователь не найден.", error_type="token_user_not_found")

    if not user.is_active:
        log.warning(f"Пользователь ID {user.id} неактивен, доступ запрещен.")
        raise ForbiddenException(message="Пользователь неактивен.", error_type="user_inactive")

    log.debug(f"Аутентифицирован пользователь: ID {user.id}")
    return user


# --- Типизация для инъекции текущего пользователя ---
CurrentUser = Annotated[User, Depends(get_current_user)]
