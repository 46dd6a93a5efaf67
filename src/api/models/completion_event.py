"""Модель SQLAlchemy для CompletionEvent (Событие завершения программы, outbox)."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CompletionEvent(Base):
    """
    Запись outbox о переходе участия в состояние "завершено".

    Создается в той же транзакции, что и сам переход, поэтому существует
    ровно одна запись на участие. Флаги фиксируют, какие побочные эффекты
    уже выполнены: повторная обработка события не выдает вторую награду.

    Attributes:
        user_id: Пользователь, завершивший программу.
        enrollment_id: Завершенное участие (уникально).
        habit_id: Идентификатор программы в каталоге.
        reward_granted: Награда уже начислена.
        roster_synced: Прогресс 100 уже передан в ростер программы.
        dispatched_at: Момент последней отправки события в обработку.
        attempts: Количество попыток обработки.
    """

    __tablename__ = "completion_events"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    enrollment_id: Mapped[int] = mapped_column(
        ForeignKey("habit_enrollments.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    habit_id: Mapped[str] = mapped_column(String(100), nullable=False)
    reward_granted: Mapped[bool] = mapped_column(default=False, nullable=False, index=True)
    roster_synced: Mapped[bool] = mapped_column(default=False, nullable=False, index=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def is_processed(self) -> bool:
        """Все побочные эффекты события выполнены."""
        return self.reward_granted and self.roster_synced
