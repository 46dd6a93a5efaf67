"""Базовая конфигурация схем Pydantic."""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Базовая схема Pydantic: читается из ORM моделей, лишние поля игнорирует."""

    model_config = ConfigDict(
        from_attributes=True,  # Схемы строятся напрямую из моделей SQLAlchemy
        populate_by_name=True,
        extra="ignore",
    )
