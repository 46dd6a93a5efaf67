"""Модель SQLAlchemy для User (Пользователь)."""

from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:  # pragma: no cover
    from .habit_enrollment import HabitEnrollment


class User(Base):
    """
    Пользователь сервиса.

    Учетные записи заводит внешний сервис идентификации, здесь хранится только то,
    что нужно движку участия: часовой пояс (для "сегодня"/"вчера" в стриках)
    и счетчик наград.

    Attributes:
        id: Внутренний идентификатор пользователя (он же `user_id` в JWT).
        username: Отображаемое имя (может отсутствовать).
        timezone: IANA часовой пояс пользователя.
        is_active: Флаг, активен ли пользователь в системе.
        reward_units: Количество полученных наград (по одной за каждую завершенную программу).
        enrollments: Все участия пользователя в программах, включая исторические.
    """

    __tablename__ = "users"

    username: Mapped[str | None] = mapped_column(String(100), index=True)
    timezone: Mapped[str] = mapped_column(String(50), default="UTC", nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    reward_units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Связи
    enrollments: Mapped[list["HabitEnrollment"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (CheckConstraint("reward_units >= 0", name="reward_units_non_negative"),)
