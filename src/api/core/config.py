"""Конфигурация API сервиса участия."""

from urllib.parse import quote_plus

from pydantic import Field, computed_field

from src.core_shared.config import AppSettings


class Settings(AppSettings):
    """
    Настройки API.

    Общие поля (режим, логирование, Sentry, Redis) наследуются от AppSettings.
    """

    API_HOST: str = "0.0.0.0"  # noqa: S104 - слушаем все интерфейсы внутри контейнера
    API_PORT: int = 8000

    # --- PostgreSQL ---
    DB_NAME: str = Field(default="habit_enrollment_db", description="Название базы данных")
    DB_USER: str = Field(default="habit_enrollment_user", description="Пользователь базы данных")
    DB_PASSWORD: str = Field(..., description="Пароль пользователя базы данных")
    DB_HOST: str = Field(default="db", description="Хост базы данных (имя сервиса в Docker)")
    DB_PORT: int = Field(default=5432, description="Порт базы данных")
    DB_POOL_SIZE: int = Field(default=10, gt=0, description="Размер пула соединений")

    # --- JWT ---
    # Токены выпускает внешний сервис идентификации, здесь они только проверяются
    JWT_SECRET_KEY: str = Field(..., description="Ключ подписи JWT")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- Каталог привычек (задачи программ и ростер участников) ---
    CATALOG_API_URL: str = Field(default="http://catalog:8000/api", description="Базовый URL каталога привычек")
    CATALOG_API_TIMEOUT: float = Field(default=5.0, gt=0, description="Таймаут запросов к каталогу в секундах")

    # --- Outbox событий завершения ---
    COMPLETION_EVENTS_SWEEP_MINUTES: int = Field(
        default=5,
        gt=0,
        description="Через сколько минут после отправки необработанное событие отправляется повторно",
    )

    @computed_field(repr=False)
    def DATABASE_URL(self) -> str:
        """URL основной базы данных для SQLAlchemy (драйвер psycopg 3)."""
        # Спецсимволы в логине и пароле не должны ломать URL
        user = quote_plus(self.DB_USER)
        password = quote_plus(self.DB_PASSWORD)

        return f"postgresql+psycopg://{user}:{password}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"


settings = Settings()  # type: ignore[call-arg]
