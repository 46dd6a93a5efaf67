"""Подключение к PostgreSQL (SQLAlchemy async) для API, воркера Celery и планировщика."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .logging import api_log as log


class Database:
    """
    Движок и фабрика сессий одного процесса.

    API подключается в lifespan, воркер Celery - на время обработки события,
    планировщик - на все время работы.
    """

    def __init__(self) -> None:
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_connected(self) -> bool:
        return self.engine is not None and self.session_factory is not None

    async def connect(self, url: str | None = None, **engine_kwargs: Any) -> None:
        """
        Создает движок и проверяет соединение.

        Args:
            url: URL базы данных. По умолчанию - `DATABASE_URL` из настроек.
            **engine_kwargs: Параметры create_async_engine поверх стандартных.

        Raises:
            RuntimeError: Если база недоступна.
        """
        if self.is_connected:
            log.debug("Подключение к базе данных уже установлено.")
            return

        options: dict[str, Any] = {
            "echo": settings.DEVELOPMENT,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
            "pool_size": settings.DB_POOL_SIZE,
        }
        options.update(engine_kwargs)

        self.engine = create_async_engine(url or str(settings.DATABASE_URL), **options)

        # Транзакциями управляют сервисы; после commit объекты остаются загруженными,
        # чтобы их можно было отдать в ответ без повторного запроса
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        try:
            async with self.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))

        except Exception as exc:
            log.critical(f"Ошибка подключения к базе данных: {exc}", exc_info=True)
            await self.disconnect()
            raise RuntimeError("Не удалось подключиться к базе данных.") from exc

        log.success("Подключение к базе данных установлено.")

    async def disconnect(self) -> None:
        if self.engine is None:
            return

        await self.engine.dispose()
        self.engine = None
        self.session_factory = None
        log.info("Подключение к базе данных закрыто.")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Сессия БД на время блока.

        Незафиксированная транзакция откатывается при любой ошибке внутри блока.

        Raises:
            RuntimeError: Если `connect()` еще не вызывался.
        """
        if self.session_factory is None:
            raise RuntimeError("База данных не подключена: вызовите `await db.connect()`.")

        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise


db = Database()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Зависимость FastAPI: сессия БД на время запроса."""
    async with db.session() as session:
        yield session
