"""
Точка входа API сервиса участия в программах привычек.

Запуск: `uvicorn src.api.main:app`.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.api.core.config import settings
from src.api.core.database import db
from src.api.core.dependencies import DBSession
from src.api.core.exceptions import setup_exception_handlers
from src.api.core.logging import api_log as log
from src.api.routes import api_router
from src.core_shared.sentry_sdk_setup import setup_sentry

if settings.SENTRY_DSN:
    setup_sentry(settings, service_name="EnrollmentAPI")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:  # pragma: no cover
    """Подключение к БД на время жизни приложения. Без БД приложение не стартует."""
    await db.connect()
    log.info(f"{settings.PROJECT_NAME} {settings.API_VERSION} запущен.")

    try:
        yield
    finally:
        await db.disconnect()
        log.info("Приложение остановлено.")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.API_VERSION,
        description="Участие пользователей в программах привычек: отметки, серии, прогресс и награды.",
        debug=settings.DEVELOPMENT,
        lifespan=lifespan,
    )

    setup_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    @app.get(
        "/healthcheck",
        tags=["Health Check"],
        summary="Проверка работоспособности сервиса",
        description="Проверяет доступ к базе данных. Если база недоступна, возвращает HTTP 503.",
    )
    async def health_check(response: Response, db_session: DBSession) -> dict[str, Any]:
        try:
            await db_session.execute(text("SELECT 1"))
            database_status = "ok"

        except (SQLAlchemyError, OSError) as exc:
            log.warning(f"Health check: база данных недоступна ({exc}).")
            database_status = "error"
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

        return {"api_status": "ok", "dependencies": {"database": database_status}}

    return app


app = create_app()
