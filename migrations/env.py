"""Окружение Alembic: метаданные моделей, URL базы данных и перехват логов в Loguru."""

import logging
from os import getenv
from urllib.parse import quote_plus

from sqlalchemy import engine_from_config, pool

from alembic import context
from src.api.models import Base  # Регистрирует все модели в metadata
from src.core_shared.logging_setup import setup_logger

loguru_logger = setup_logger("Alembic")


class InterceptHandler(logging.Handler):
    """Перенаправляет записи стандартного `logging` (Alembic, SQLAlchemy) в Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Пропускаем кадры самого logging, чтобы в логе было место реального вызова
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

config = context.config
target_metadata = Base.metadata


def get_database_url() -> str:
    """
    Собирает синхронный URL PostgreSQL из переменных окружения DB_*.

    Настройки приложения здесь не используются: миграциям не нужны JWT и прочие обязательные поля.

    Raises:
        ValueError: Если не задан DB_PASSWORD.
    """
    db_password = getenv("DB_PASSWORD")

    if not db_password:
        raise ValueError("Не задана переменная окружения DB_PASSWORD.")

    db_user = quote_plus(getenv("DB_USER", "habit_enrollment_user"))
    db_host = getenv("DB_HOST", "db")
    db_port = getenv("DB_PORT", "5432")
    db_name = getenv("DB_NAME", "habit_enrollment_db")

    return f"postgresql+psycopg://{db_user}:{quote_plus(db_password)}@{db_host}:{db_port}/{db_name}"


# URL, заданный снаружи (alembic.ini или тесты), имеет приоритет над окружением
database_url = config.get_main_option("sqlalchemy.url") or get_database_url()


def run_migrations_offline() -> None:
    """Генерирует SQL без подключения к БД."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Применяет миграции через подключение к БД."""
    connectable_config = config.get_section(config.config_ini_section, {})
    connectable_config["sqlalchemy.url"] = database_url

    connectable = engine_from_config(connectable_config, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
