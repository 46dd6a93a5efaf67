"""
Клиенты внешнего каталога привычек.

Каталог - отдельный сервис: он хранит программы, их задачи и ростер участников программы.
Сервису участия от него нужно немногое:
- список задач программы с днями, в которые они назначены (`TaskCatalogClient`);
- запись прогресса пользователя в ростер программы (`EngagementRosterClient`).
"""

from typing import Any, Protocol
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from src.api.core.config import settings
from src.api.core.exceptions import ServiceUnavailableException
from src.api.core.logging import api_log as log
from src.api.schemas import CatalogTask

_catalog_tasks_adapter = TypeAdapter(list[CatalogTask])


class TaskCatalog(Protocol):
    """Источник задач программы."""

    async def tasks_for(self, habit_id: str) -> list[CatalogTask]: ...


class EngagementRoster(Protocol):
    """Ростер участников программы."""

    async def set_progress(self, habit_id: str, user_id: int, percent: int) -> None: ...


class CatalogHTTPClient:
    """
    Общая часть HTTP-клиентов каталога.

    Держит один `httpx.AsyncClient` на время жизни клиента (connection pooling).
    Клиент можно передать снаружи, тогда закрывать его должен владелец.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=base_url or settings.CATALOG_API_URL,
            timeout=timeout or settings.CATALOG_API_TIMEOUT,
        )

    async def close(self) -> None:
        """Закрывает HTTP-клиент, если он был создан здесь."""
        if self._owns_client:
            await self.http_client.aclose()

    @staticmethod
    def _habit_path(habit_id: str) -> str:
        """Путь программы в каталоге. Идентификатор экранируется целиком, включая '/'."""
        return f"/habits/{quote(habit_id, safe='')}"

    async def _request(self, method: str, endpoint: str, json: dict[str, Any] | None = None) -> httpx.Response:
        """
        Выполняет запрос к каталогу.

        Ответ возвращается как есть (без raise_for_status): статус разбирает вызывающий метод.

        Raises:
            ServiceUnavailableException: При сетевой ошибке или таймауте.
        """
        log.debug(f"Catalog request: {method} {endpoint}")

        try:
            return await self.http_client.request(method, endpoint, json=json)

        except httpx.RequestError as exc:
            log.error(f"Каталог недоступен ({method} {endpoint}): {exc}")
            raise ServiceUnavailableException(
                message="Каталог привычек временно недоступен.",
                error_type="catalog_unavailable",
            ) from exc


class TaskCatalogClient(CatalogHTTPClient):
    """Клиент чтения задач программы из каталога."""

    async def tasks_for(self, habit_id: str) -> list[CatalogTask]:
        """
        Получает задачи программы.

        Использует эндпоинт каталога GET /habits/{habit_id}/tasks.

        Args:
            habit_id (str): Идентификатор программы.

        Returns:
            list[CatalogTask]: Задачи программы; пустой список, если каталог программу не знает.

        Raises:
            ServiceUnavailableException: Если каталог недоступен или вернул некорректный ответ.
        """
        response = await self._request("GET", f"{self._habit_path(habit_id)}/tasks")

        if response.status_code == httpx.codes.NOT_FOUND:
            log.info(f"Программа '{habit_id}' не найдена в каталоге.")
            return []

        try:
            response.raise_for_status()
            tasks = _catalog_tasks_adapter.validate_python(response.json())

        except (httpx.HTTPStatusError, ValueError, ValidationError) as exc:
            log.error(f"Некорректный ответ каталога для программы '{habit_id}': {exc}")
            raise ServiceUnavailableException(
                message="Каталог привычек вернул некорректный ответ.",
                error_type="catalog_bad_response",
            ) from exc

        log.debug(f"Каталог: у программы '{habit_id}' задач: {len(tasks)}.")

        return tasks


class EngagementRosterClient(CatalogHTTPClient):
    """Клиент записи прогресса участников в ростер программы."""

    async def set_progress(self, habit_id: str, user_id: int, percent: int) -> None:
        """
        Записывает прогресс пользователя в ростер программы.

        Использует эндпоинт каталога PUT /habits/{habit_id}/engaged-users/{user_id}/progress.

        Raises:
            ServiceUnavailableException: Если каталог недоступен или отклонил запись.
        """
        response = await self._request(
            "PUT",
            f"{self._habit_path(habit_id)}/engaged-users/{user_id}/progress",
            json={"progress": percent},
        )

        try:
            response.raise_for_status()

        except httpx.HTTPStatusError as exc:
            log.warning(
                f"Каталог отклонил прогресс {percent}% пользователя ID {user_id} "
                f"в программе '{habit_id}': {exc.response.status_code} - {exc.response.text}"
            )
            raise ServiceUnavailableException(
                message="Не удалось обновить ростер программы.",
                error_type="roster_sync_failed",
            ) from exc

        log.info(f"Ростер программы '{habit_id}': прогресс пользователя ID {user_id} = {percent}%.")
