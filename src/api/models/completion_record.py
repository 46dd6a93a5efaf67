"""Модель SQLAlchemy для CompletionRecord (Отметка о выполнении задачи)."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, SmallInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.api.utils.date_utils import utc_now

from .base import Base

if TYPE_CHECKING:  # pragma: no cover
    from .habit_enrollment import HabitEnrollment


class CompletionRecord(Base):
    """
    Факт выполнения конкретной задачи в конкретный логический день программы.

    Attributes:
        enrollment_id: Внешний ключ на участие.
        day: Логический день программы (начиная с 1).
        task_id: Идентификатор задачи в каталоге (None - отметка без привязки к задаче).
        completed_at: Момент последней отметки.
        completion_time: Затраченное время в минутах.
        notes: Заметка пользователя.
        rating: Оценка задачи пользователем (1..5).
    """

    __tablename__ = "completion_records"

    enrollment_id: Mapped[int] = mapped_column(
        ForeignKey("habit_enrollments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day: Mapped[int] = mapped_column(Integer, nullable=False)
    task_id: Mapped[str | None] = mapped_column(String(100))
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    completion_time: Mapped[int | None] = mapped_column(Integer)
    notes: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    rating: Mapped[int | None] = mapped_column(SmallInteger)

    # Связи
    enrollment: Mapped["HabitEnrollment"] = relationship(back_populates="completion_records")

    # Для непустого task_id в рамках участия допустима одна запись на пару (день, задача).
    # NULL в task_id уникальность не нарушает (стандартная семантика SQL)
    __table_args__ = (
        UniqueConstraint("enrollment_id", "day", "task_id", name="uq_completion_record_day_task"),
        CheckConstraint("day >= 1", name="day_positive"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="rating_range"),
        CheckConstraint("completion_time IS NULL OR completion_time >= 0", name="completion_time_non_negative"),
    )
