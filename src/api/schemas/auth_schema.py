"""Схемы Pydantic для аутентификации."""

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """
    Данные (payload) JWT, выпущенного внешним сервисом идентификации.

    Сервис участия только проверяет токен: из него берется внутренний ID пользователя.
    """

    user_id: int = Field(..., gt=0, description="ID пользователя (внутренний)")
    exp: int | None = Field(None, description="Время истечения токена (Unix timestamp)")
