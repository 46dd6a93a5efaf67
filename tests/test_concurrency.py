import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.core.exceptions import ConflictException
from src.api.models import HabitEnrollment, User
from src.api.schemas import CompletionSchemaCreate
from src.api.services import EnrollmentService
from src.api.utils.date_utils import utc_now
from tests.fakes import MEDITATION

# Помечаем все тесты в модуле как асинхронные
pytestmark = pytest.mark.asyncio


async def test_parallel_completions_of_one_user_are_not_lost(
    enrollment_service: EnrollmentService,
    db_session: AsyncSession,
    db_session_factory: async_sessionmaker[AsyncSession],
    user: User,
):
    """Две отметки одного пользователя в разных сессиях выполняются по очереди, обе сохраняются."""
    enrollment = await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    async def complete_in_own_session(day: int, task_id: str) -> None:
        async with db_session_factory() as session:
            await enrollment_service.complete_task(
                session,
                user=user,
                habit_id=MEDITATION,
                completion=CompletionSchemaCreate(day=day, task_id=task_id),
            )

    await asyncio.gather(complete_in_own_session(1, "breathe"), complete_in_own_session(2, "body-scan"))

    async with db_session_factory() as session:
        stored = await session.get(HabitEnrollment, enrollment.id)

        assert {(record.day, record.task_id) for record in stored.completion_records} == {
            (1, "breathe"),
            (2, "body-scan"),
        }
        assert stored.total_completed_tasks == 2
        assert stored.progress_percentage == 67


async def test_parallel_starts_create_one_enrollment(
    enrollment_service: EnrollmentService,
    db_session_factory: async_sessionmaker[AsyncSession],
    user: User,
):
    """Из двух одновременных стартов одной программы проходит ровно один, второй получает конфликт."""

    async def start_in_own_session() -> HabitEnrollment:
        async with db_session_factory() as session:
            return await enrollment_service.start_enrollment(session, user=user, habit_id=MEDITATION)

    results = await asyncio.gather(start_in_own_session(), start_in_own_session(), return_exceptions=True)

    started = [result for result in results if isinstance(result, HabitEnrollment)]
    conflicts = [result for result in results if isinstance(result, ConflictException)]
    assert len(started) == 1
    assert len(conflicts) == 1
    assert conflicts[0].error_type == "enrollment_already_active"

    async with db_session_factory() as session:
        active_count = await session.scalar(
            select(func.count(HabitEnrollment.id)).where(
                HabitEnrollment.user_id == user.id, HabitEnrollment.is_active
            )
        )

    assert active_count == 1


async def test_active_enrollment_is_unique_in_schema(db_session: AsyncSession, user: User):
    """Частичный уникальный индекс из миграции не пропускает второе активное участие."""

    def active_enrollment() -> HabitEnrollment:
        return HabitEnrollment(
            user_id=user.id,
            habit_id=MEDITATION,
            start_date=utc_now(),
            is_active=True,
            is_completed=False,
            streak=0,
            longest_streak=0,
            total_completed_tasks=0,
            progress_percentage=0,
        )

    db_session.add(active_enrollment())
    await db_session.commit()

    db_session.add(active_enrollment())

    with pytest.raises(IntegrityError):
        await db_session.commit()

    await db_session.rollback()
