"""Модель SQLAlchemy для HabitEnrollment (Участие пользователя в программе привычки)."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.api.utils.date_utils import days_since, utc_now

from .base import Base

if TYPE_CHECKING:  # pragma: no cover
    from .completion_record import CompletionRecord
    from .user import User


class HabitEnrollment(Base):
    """
    Одна попытка пользователя пройти программу привычки: от старта до завершения или отказа.

    Для одной пары (пользователь, привычка) может существовать сколько угодно исторических
    записей, но активной (`is_active = True`) - не более одной. Это гарантирует частичный
    уникальный индекс `uq_habit_enrollments_active_user_habit`.

    Attributes:
        id: Идентификатор участия (унаследован от Base).
        user_id: Внешний ключ на пользователя.
        habit_id: Идентификатор программы в каталоге.
        start_date: Момент старта (или последнего сброса) участия.
        is_active: Идет ли участие сейчас.
        is_completed: Завершена ли программа полностью (терминальное состояние).
        completed_at: Момент завершения программы.
        streak: Текущая серия подряд идущих логических дней.
        longest_streak: Лучшая серия за время участия.
        total_completed_tasks: Количество впервые отмеченных пар (день, задача).
        last_completed_date: Момент последней новой отметки.
        progress_percentage: Доля выполненных задач программы (0..100).
        completion_records: Отметки о выполнении задач в порядке добавления.
    """

    __tablename__ = "habit_enrollments"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    habit_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    is_completed: Mapped[bool] = mapped_column(default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_completed_tasks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_completed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Связи
    user: Mapped["User"] = relationship(back_populates="enrollments")
    # selectin: записи нужны почти при каждом чтении участия, а ленивая загрузка в async недоступна
    completion_records: Mapped[list["CompletionRecord"]] = relationship(
        back_populates="enrollment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="CompletionRecord.id",
    )

    __table_args__ = (
        Index("ix_habit_enrollments_user_habit_active", "user_id", "habit_id", "is_active"),
        Index(
            "uq_habit_enrollments_active_user_habit",
            "user_id",
            "habit_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
        CheckConstraint("progress_percentage >= 0 AND progress_percentage <= 100", name="progress_percentage_range"),
        CheckConstraint(
            "streak >= 0 AND longest_streak >= 0 AND total_completed_tasks >= 0",
            name="counters_non_negative",
        ),
        CheckConstraint(
            "NOT is_completed OR (NOT is_active AND completed_at IS NOT NULL)",
            name="completed_is_terminal",
        ),
    )

    def current_day_at(self, moment: datetime) -> int:
        """Логический день программы на момент `moment` (первый день - 1)."""
        return days_since(self.start_date, moment) + 1

    @property
    def current_day(self) -> int:
        """Текущий логический день программы. Не хранится, вычисляется от `start_date`."""
        return self.current_day_at(utc_now())
