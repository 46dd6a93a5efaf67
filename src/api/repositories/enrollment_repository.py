"""Репозиторий для работы с моделями HabitEnrollment и CompletionRecord."""

from datetime import datetime
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.logging import api_log as log
from src.api.models import CompletionRecord, HabitEnrollment

from .base_repository import BaseRepository


class EnrollmentRepository(BaseRepository[HabitEnrollment]):
    """
    Хранилище участий пользователей в программах.

    Участия ищутся по вторичному ключу (пользователь, привычка, активность);
    отметки о выполнении подгружаются вместе с участием (selectin).
    """

    async def get_active(self, db_session: AsyncSession, *, user_id: int, habit_id: str) -> HabitEnrollment | None:
        """
        Получает активное участие пользователя в программе.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            user_id (int): ID пользователя.
            habit_id (str): Идентификатор программы в каталоге.

        Returns:
            HabitEnrollment | None: Активное участие или None.
        """
        log.debug(f"Поиск активного участия пользователя ID {user_id} в программе '{habit_id}'")

        return await self.get_by_filter_first_or_none(
            db_session,
            self.model.user_id == user_id,
            self.model.habit_id == habit_id,
            self.model.is_active.is_(True),
        )

    async def list_active(self, db_session: AsyncSession, *, user_id: int) -> Sequence[HabitEnrollment]:
        """Все активные участия пользователя в порядке старта."""
        return await self.get_multi_by_filter(
            db_session,
            self.model.user_id == user_id,
            self.model.is_active.is_(True),
            order_by=[self.model.start_date.asc(), self.model.id.asc()],
        )

    async def list_for_user(self, db_session: AsyncSession, *, user_id: int) -> Sequence[HabitEnrollment]:
        """Все участия пользователя, включая завершенные и брошенные."""
        return await self.get_multi_by_filter(
            db_session,
            self.model.user_id == user_id,
            order_by=[self.model.id.asc()],
        )

    async def count_completions_since(self, db_session: AsyncSession, *, user_id: int, since: datetime) -> int:
        """
        Количество отметок о выполнении пользователя, сделанных начиная с момента `since`.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            user_id (int): ID пользователя.
            since (datetime): Нижняя граница (включительно) по `completed_at`.

        Returns:
            int: Количество отметок по всем участиям пользователя.
        """
        statement = (
            select(func.count(CompletionRecord.id))
            .join(HabitEnrollment, CompletionRecord.enrollment_id == HabitEnrollment.id)
            .where(HabitEnrollment.user_id == user_id, CompletionRecord.completed_at >= since)
        )
        result = await db_session.execute(statement)

        return result.scalar_one()
