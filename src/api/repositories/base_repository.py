"""Базовый репозиторий: чтение по ID и фильтрам, блокировка строки, добавление."""

from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import ColumnElement, Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.logging import api_log as log
from src.api.models import Base as SQLAlchemyBaseModel

ModelType = TypeVar("ModelType", bound=SQLAlchemyBaseModel)


class BaseRepository(Generic[ModelType]):
    """
    Асинхронный доступ к одной модели.

    Репозиторий только читает и добавляет изменения в сессию (flush).
    Границы транзакций (commit/rollback) определяют сервисы.

    Attributes:
        model: Класс модели SQLAlchemy.
    """

    def __init__(self, model: type[ModelType]):
        self.model = model

    def _select(
        self,
        *filters: ColumnElement[bool],
        order_by: Sequence[ColumnElement[Any]] | None = None,
        limit: int | None = None,
    ) -> Select[tuple[ModelType]]:
        statement = select(self.model)

        if filters:
            statement = statement.where(*filters)

        if order_by:
            statement = statement.order_by(*order_by)

        if limit is not None:
            statement = statement.limit(limit)

        return statement

    async def get_by_id(self, db_session: AsyncSession, *, obj_id: int) -> ModelType | None:
        """
        Получает запись по ID.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            obj_id (int): Идентификатор записи.

        Returns:
            ModelType | None: Экземпляр модели или None.
        """
        instance = await db_session.scalar(self._select(self.model.id == obj_id))
        log.debug(f"{self.model.__name__} ID {obj_id}: {'найден' if instance else 'не найден'}.")

        return instance

    async def get_by_id_for_update(self, db_session: AsyncSession, *, obj_id: int) -> ModelType | None:
        """
        Получает запись по ID и блокирует строку до конца транзакции (SELECT ... FOR UPDATE).

        Значения перечитываются из БД, даже если объект уже есть в сессии:
        после получения блокировки нужны данные, зафиксированные предыдущим владельцем блокировки.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            obj_id (int): Идентификатор записи.

        Returns:
            ModelType | None: Заблокированный экземпляр модели или None.
        """
        statement = (
            self._select(self.model.id == obj_id).with_for_update().execution_options(populate_existing=True)
        )
        instance = await db_session.scalar(statement)
        log.debug(f"{self.model.__name__} ID {obj_id} заблокирован: {instance is not None}.")

        return instance

    async def get_by_filter_first_or_none(
        self, db_session: AsyncSession, *filters: ColumnElement[bool]
    ) -> ModelType | None:
        """Первая запись, удовлетворяющая всем фильтрам (AND), или None."""
        return await db_session.scalar(self._select(*filters, limit=1))

    async def get_multi_by_filter(
        self,
        db_session: AsyncSession,
        *filters: ColumnElement[bool],
        limit: int | None = None,
        order_by: Sequence[ColumnElement[Any]] | None = None,
    ) -> Sequence[ModelType]:
        """
        Записи, удовлетворяющие всем фильтрам (AND).

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            *filters (ColumnElement[bool]): Условия SQLAlchemy.
            limit (int | None): Максимум записей (None - без ограничения).
            order_by (Sequence[ColumnElement[Any]] | None): Сортировка.

        Returns:
            Sequence[ModelType]: Найденные записи.
        """
        result = await db_session.scalars(self._select(*filters, order_by=order_by, limit=limit))
        return result.all()

    async def add(self, db_session: AsyncSession, *, db_obj: ModelType) -> ModelType:
        """Добавляет объект в сессию и выполняет flush, чтобы получить `id` от БД."""
        db_session.add(db_obj)
        await db_session.flush()

        log.debug(f"{self.model.__name__} добавлен (ID {db_obj.id}).")

        return db_obj
