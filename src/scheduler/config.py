"""Конфигурация планировщика."""

from pydantic import Field

from src.core_shared.config import AppSettings


class Settings(AppSettings):
    """
    Настройки планировщика.

    Общие поля (логирование, Sentry) наследуются от AppSettings.
    """

    # Как часто проверять необработанные события завершения (минуты)
    COMPLETION_EVENTS_SWEEP_INTERVAL_MINUTES: int = Field(
        default=1,
        gt=0,
        description="Интервал проверки необработанных событий завершения",
    )

    # Сколько событий отправлять в обработку за один проход
    COMPLETION_EVENTS_SWEEP_BATCH_SIZE: int = Field(
        default=100,
        gt=0,
        description="Максимум событий за один проход",
    )


# Создаем глобальный экземпляр настроек
settings = Settings()
