"""Настройки, общие для всех процессов сервиса: API, воркера Celery и планировщика."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Общие настройки процесса.

    Значения читаются из переменных окружения и файла .env.
    Процессы наследуют этот класс и добавляют свои поля.
    """

    PROJECT_NAME: str = "Habit Enrollment Service"
    API_VERSION: str = "0.1.0"

    # Для продакшена - False
    DEVELOPMENT: bool = Field(default=False, description="Режим разработки/тестирования")

    # --- Логирование ---
    LOG_LEVEL: str = Field(default="INFO", description="Уровень логирования")
    LOG_TO_FILE: bool = Field(default=True, description="Дублировать логи в файлы logs/")

    # --- Sentry ---
    SENTRY_DSN: str | None = Field(default=None, description="Sentry DSN. Если не задан, мониторинг отключен.")

    # --- Очередь событий завершения ---
    REDIS_URL: str = Field(default="redis://redis:6379/0", description="Брокер и бэкенд результатов Celery")

    @property
    def PRODUCTION(self) -> bool:
        return not self.DEVELOPMENT

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
