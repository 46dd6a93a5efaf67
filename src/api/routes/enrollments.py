"""
Эндпоинты для управления участием в программах привычек (Enrollments).
"""

from typing import Annotated, Sequence

from fastapi import APIRouter, Path, Query, status

from src.api.core.dependencies import CurrentUser, DBSession, EnrollmentSvc
from src.api.models import HabitEnrollment
from src.api.schemas import (
    CompletionResultSchema,
    CompletionSchemaCreate,
    EnrollmentSchemaCreate,
    EnrollmentSchemaRead,
    EnrollmentSchemaReadWithTasks,
    EnrollmentStatsSchema,
    TodayTaskSchema,
)

router = APIRouter(prefix="/enrollments", tags=["Enrollments"])

HabitIdPath = Annotated[str, Path(min_length=1, max_length=100, description="Идентификатор программы в каталоге")]


@router.post(
    "/",
    response_model=EnrollmentSchemaRead,
    status_code=status.HTTP_201_CREATED,
    summary="Старт программы",
    description="Начинает участие текущего пользователя в программе привычки.",
)
async def start_enrollment(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
    enrollment_in: EnrollmentSchemaCreate,
) -> HabitEnrollment:
    """
    Начинает участие в программе.

    Args:
        db_session: Асинхронная сессия базы данных.
        current_user: Аутентифицированный пользователь.
        enrollment_service: Сервис участий.
        enrollment_in: Идентификатор программы.

    Returns:
        HabitEnrollment: Новое активное участие.
    """
    return await enrollment_service.start_enrollment(db_session, user=current_user, habit_id=enrollment_in.habit_id)


@router.get(
    "/",
    response_model=Sequence[EnrollmentSchemaRead],
    summary="Активные программы пользователя",
)
async def list_active_enrollments(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
) -> Sequence[HabitEnrollment]:
    return await enrollment_service.list_active_enrollments(db_session, user=current_user)


@router.get(
    "/stats",
    response_model=EnrollmentStatsSchema,
    summary="Сводная статистика",
    description="Количество активных, завершенных и брошенных программ, серии, прогресс и награды.",
)
async def get_aggregate_stats(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
) -> EnrollmentStatsSchema:
    return await enrollment_service.get_aggregate_stats(db_session, user=current_user)


@router.get(
    "/today",
    response_model=list[TodayTaskSchema],
    summary="Задания на сегодня по всем активным программам",
)
async def list_today_tasks(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
) -> list[TodayTaskSchema]:
    return await enrollment_service.list_today_tasks(db_session, user=current_user)


@router.get(
    "/{habit_id}",
    response_model=EnrollmentSchemaReadWithTasks,
    summary="Активное участие с задачами программы",
)
async def get_enrollment(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
    habit_id: HabitIdPath,
) -> EnrollmentSchemaReadWithTasks:
    return await enrollment_service.get_enrollment(db_session, user=current_user, habit_id=habit_id)


@router.get(
    "/{habit_id}/today",
    response_model=TodayTaskSchema | None,
    summary="Задание на сегодня",
    description="Задачи и отметки текущего логического дня программы. `null`, если активного участия нет.",
)
async def get_today_task(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
    habit_id: HabitIdPath,
) -> TodayTaskSchema | None:
    return await enrollment_service.get_today_task(db_session, user=current_user, habit_id=habit_id)


@router.post(
    "/{habit_id}/stop",
    response_model=EnrollmentSchemaRead,
    summary="Отказ от программы",
    description="Прекращает активное участие; прогресс сохраняется в истории.",
)
async def stop_enrollment(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
    habit_id: HabitIdPath,
) -> HabitEnrollment:
    return await enrollment_service.stop_enrollment(db_session, user=current_user, habit_id=habit_id)


@router.post(
    "/{habit_id}/reset",
    response_model=EnrollmentSchemaRead,
    summary="Сброс прогресса программы",
    description="Удаляет отметки, обнуляет счетчики и начинает программу с первого дня.",
)
async def reset_enrollment(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
    habit_id: HabitIdPath,
) -> HabitEnrollment:
    return await enrollment_service.reset_enrollment(db_session, user=current_user, habit_id=habit_id)


@router.post(
    "/{habit_id}/completions",
    response_model=CompletionResultSchema,
    summary="Отметка задачи выполненной",
    description=(
        "Отмечает задачу в указанный логический день. Повторная отметка обновляет данные отметки. "
        "Если выполнены все задачи программы, участие завершается."
    ),
)
async def complete_task(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
    habit_id: HabitIdPath,
    completion_in: CompletionSchemaCreate,
) -> CompletionResultSchema:
    """
    Отмечает задачу выполненной.

    Args:
        db_session: Асинхронная сессия базы данных.
        current_user: Аутентифицированный пользователь.
        enrollment_service: Сервис участий.
        habit_id: Идентификатор программы.
        completion_in: День, задача и необязательные данные отметки.

    Returns:
        CompletionResultSchema: Участие и признак завершения программы этой отметкой.
    """
    enrollment, is_habit_completed = await enrollment_service.complete_task(
        db_session, user=current_user, habit_id=habit_id, completion=completion_in
    )

    return CompletionResultSchema(
        enrollment=EnrollmentSchemaRead.model_validate(enrollment),
        is_habit_completed=is_habit_completed,
    )


@router.delete(
    "/{habit_id}/completions",
    response_model=EnrollmentSchemaRead,
    summary="Снятие отметки о выполнении",
    description="Удаляет первую отметку дня (и задачи, если указана). Отсутствие отметки не является ошибкой.",
)
async def uncomplete_task(
    db_session: DBSession,
    current_user: CurrentUser,
    enrollment_service: EnrollmentSvc,
    habit_id: HabitIdPath,
    day: Annotated[int, Query(ge=1, description="Логический день программы")],
    task_id: Annotated[str | None, Query(min_length=1, max_length=100, description="Идентификатор задачи")] = None,
) -> HabitEnrollment:
    return await enrollment_service.uncomplete_task(
        db_session, user=current_user, habit_id=habit_id, day=day, task_id=task_id
    )
