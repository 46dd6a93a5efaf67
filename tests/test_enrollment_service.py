import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.exceptions import BadRequestException, ConflictException, NotFoundException
from src.api.models import CompletionEvent, CompletionRecord, HabitEnrollment, User
from src.api.schemas import CatalogTask, CompletionSchemaCreate
from src.api.services import EnrollmentService
from tests.fakes import MEDITATION, READING, FakeTaskCatalog, RecordingDispatcher

# Помечаем все тесты в модуле как асинхронные
pytestmark = pytest.mark.asyncio


async def complete(service: EnrollmentService, db_session: AsyncSession, user: User, habit_id: str, **fields):
    """Отмечает задачу через сервис и возвращает (участие, признак завершения)."""
    return await service.complete_task(
        db_session, user=user, habit_id=habit_id, completion=CompletionSchemaCreate(**fields)
    )


# --- Старт ---


async def test_start_enrollment(enrollment_service: EnrollmentService, db_session: AsyncSession, user: User):
    """Новое участие активно, начинается с первого дня и пустых счетчиков."""
    enrollment = await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    assert enrollment.id is not None
    assert enrollment.is_active is True
    assert enrollment.is_completed is False
    assert enrollment.current_day == 1
    assert enrollment.streak == 0
    assert enrollment.progress_percentage == 0
    assert enrollment.completion_records == []


async def test_start_enrollment_twice_conflicts(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """Вторая активная попытка той же программы запрещена."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    with pytest.raises(ConflictException) as exc_info:
        await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    assert exc_info.value.error_type == "enrollment_already_active"

    # После отката объекты сессии просрочены
    await db_session.refresh(user)
    active_count = await db_session.scalar(
        select(func.count(HabitEnrollment.id)).where(HabitEnrollment.user_id == user.id, HabitEnrollment.is_active)
    )
    assert active_count == 1


async def test_start_unknown_habit(enrollment_service: EnrollmentService, db_session: AsyncSession, user: User):
    """Программа без задач в каталоге считается несуществующей."""
    with pytest.raises(NotFoundException) as exc_info:
        await enrollment_service.start_enrollment(db_session, user=user, habit_id="no-such-habit")

    assert exc_info.value.error_type == "habit_not_found"


async def test_restart_after_stop_creates_new_attempt(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """После отказа программу можно начать заново, старая попытка остается в истории."""
    first = await enrollment_service.start_enrollment(db_session, user=user, habit_id=READING)
    await enrollment_service.stop_enrollment(db_session, user=user, habit_id=READING)

    second = await enrollment_service.start_enrollment(db_session, user=user, habit_id=READING)

    assert second.id != first.id
    assert first.is_active is False
    assert second.is_active is True


# --- Отметки ---


async def test_full_program_completion(
    enrollment_service: EnrollmentService,
    db_session: AsyncSession,
    user: User,
    dispatcher: RecordingDispatcher,
):
    """Три задачи по дням 1-3: прогресс 33 -> 67 -> 100, программа завершена, событие отправлено."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    enrollment, is_completed = await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")
    assert enrollment.progress_percentage == 33
    assert is_completed is False

    enrollment, is_completed = await complete(
        enrollment_service, db_session, user, MEDITATION, day=2, task_id="body-scan"
    )
    assert enrollment.progress_percentage == 67
    assert is_completed is False
    assert dispatcher.dispatched == []

    enrollment, is_completed = await complete(enrollment_service, db_session, user, MEDITATION, day=3, task_id="walk")

    assert is_completed is True
    assert enrollment.progress_percentage == 100
    assert enrollment.is_completed is True
    assert enrollment.is_active is False
    assert enrollment.completed_at is not None
    assert enrollment.streak == 3
    assert enrollment.longest_streak == 3
    assert enrollment.total_completed_tasks == 3

    event = await db_session.scalar(select(CompletionEvent).where(CompletionEvent.enrollment_id == enrollment.id))
    assert event is not None
    assert event.reward_granted is False
    assert event.dispatched_at is not None
    assert dispatcher.dispatched == [event.id]


async def test_repeated_completion_updates_record_without_counting(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """Повторная отметка той же пары (день, задача) не увеличивает счетчик."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe", rating=3)
    enrollment, _ = await complete(
        enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe", notes="Спокойно", rating=5
    )

    assert enrollment.total_completed_tasks == 1
    assert len(enrollment.completion_records) == 1
    record = enrollment.completion_records[0]
    assert record.notes == "Спокойно"
    assert record.rating == 5

    # Без необязательных полей сохраненные значения не стираются
    enrollment, _ = await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")

    assert enrollment.completion_records[0].notes == "Спокойно"
    assert enrollment.completion_records[0].rating == 5
    assert enrollment.progress_percentage == 33


async def test_completion_without_task_does_not_move_progress(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """Отметка без задачи считается, но на прогресс по задачам не влияет."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    enrollment, is_completed = await complete(enrollment_service, db_session, user, MEDITATION, day=1)

    assert is_completed is False
    assert enrollment.total_completed_tasks == 1
    assert enrollment.progress_percentage == 0
    assert enrollment.streak == 1


async def test_single_task_program_completes_on_first_mark(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """Задача, назначенная на несколько дней, считается одной различной задачей."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=READING)

    enrollment, is_completed = await complete(
        enrollment_service, db_session, user, READING, day=2, task_id="read-10-pages"
    )

    assert is_completed is True
    assert enrollment.progress_percentage == 100


async def test_complete_unknown_task(enrollment_service: EnrollmentService, db_session: AsyncSession, user: User):
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    with pytest.raises(NotFoundException) as exc_info:
        await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="juggling")

    assert exc_info.value.error_type == "task_not_found"


async def test_complete_task_on_wrong_day(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """Задача дня 3 не может быть отмечена в день 1."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)

    with pytest.raises(BadRequestException) as exc_info:
        await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="walk")

    assert exc_info.value.error_type == "task_day_mismatch"
    assert exc_info.value.loc == ["body", "day"]


async def test_task_listed_in_several_catalog_entries(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User, catalog: FakeTaskCatalog
):
    """Задача, которая пришла из каталога несколькими записями, доступна во все их дни."""
    catalog.programs["split-week"] = [
        CatalogTask(task_id="stretch", days=[1]),
        CatalogTask(task_id="stretch", days=[2]),
        CatalogTask(task_id="run", days=[3]),
    ]
    await enrollment_service.start_enrollment(db_session, user=user, habit_id="split-week")

    enrollment, _ = await complete(enrollment_service, db_session, user, "split-week", day=2, task_id="stretch")

    # Две различные задачи: одна выполнена
    assert enrollment.progress_percentage == 50

    details = await enrollment_service.get_enrollment(db_session, user=user, habit_id="split-week")
    assert details.total_task_count == 2
    assert [(task.task_id, task.days) for task in details.tasks] == [("stretch", [1, 2]), ("run", [3])]
    assert details.tasks[0].completed_days == [2]


async def test_task_without_valid_days_can_be_completed_any_day(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User, catalog: FakeTaskCatalog
):
    """Задача, у которой в каталоге не осталось корректных дней, не блокирует завершение программы."""
    catalog.programs["loose"] = [
        CatalogTask(task_id="plan", days=[1]),
        CatalogTask(task_id="reflect", days=[0]),
    ]
    await enrollment_service.start_enrollment(db_session, user=user, habit_id="loose")
    await complete(enrollment_service, db_session, user, "loose", day=1, task_id="plan")

    enrollment, is_completed = await complete(enrollment_service, db_session, user, "loose", day=3, task_id="reflect")

    assert is_completed is True
    assert enrollment.is_completed is True
    assert enrollment.progress_percentage == 100


async def test_complete_without_active_enrollment(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    with pytest.raises(NotFoundException) as exc_info:
        await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")

    assert exc_info.value.error_type == "enrollment_not_found"


async def test_dispatch_failure_does_not_fail_completion(
    enrollment_service: EnrollmentService,
    db_session: AsyncSession,
    user: User,
    dispatcher: RecordingDispatcher,
):
    """Недоступный брокер не откатывает завершение: событие остается в outbox."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=READING)
    dispatcher.fail = True

    enrollment, is_completed = await complete(
        enrollment_service, db_session, user, READING, day=1, task_id="read-10-pages"
    )

    assert is_completed is True
    assert enrollment.is_completed is True
    events = (await db_session.scalars(select(CompletionEvent))).all()
    assert len(events) == 1
    assert dispatcher.dispatched == []


async def test_catalog_is_read_before_each_mutation(
    enrollment_service: EnrollmentService,
    db_session: AsyncSession,
    user: User,
    catalog: FakeTaskCatalog,
):
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")

    assert catalog.requested == [MEDITATION, MEDITATION]


# --- Снятие отметок ---


async def test_uncomplete_restores_previous_state(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """Отметка и ее снятие возвращают участие в исходное состояние."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")

    enrollment = await enrollment_service.uncomplete_task(
        db_session, user=user, habit_id=MEDITATION, day=1, task_id="breathe"
    )

    assert enrollment.completion_records == []
    assert enrollment.total_completed_tasks == 0
    assert enrollment.progress_percentage == 0
    assert enrollment.streak == 0

    records_count = await db_session.scalar(select(func.count(CompletionRecord.id)))
    assert records_count == 0


async def test_uncomplete_missing_record_is_noop(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")

    enrollment = await enrollment_service.uncomplete_task(db_session, user=user, habit_id=MEDITATION, day=2)

    assert enrollment.total_completed_tasks == 1
    assert len(enrollment.completion_records) == 1


async def test_uncomplete_keeps_longest_streak(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """Лучшая серия не уменьшается при снятии отметки."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")
    await complete(enrollment_service, db_session, user, MEDITATION, day=2, task_id="body-scan")

    enrollment = await enrollment_service.uncomplete_task(
        db_session, user=user, habit_id=MEDITATION, day=2, task_id="body-scan"
    )

    assert enrollment.streak == 1
    assert enrollment.longest_streak == 2


async def test_completed_enrollment_cannot_be_uncompleted(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    """Завершение программы необратимо."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=READING)
    enrollment, _ = await complete(enrollment_service, db_session, user, READING, day=1, task_id="read-10-pages")

    with pytest.raises(NotFoundException):
        await enrollment_service.uncomplete_task(db_session, user=user, habit_id=READING, day=1)

    await db_session.refresh(enrollment)
    assert enrollment.is_completed is True
    assert enrollment.progress_percentage == 100


# --- Остановка и сброс ---


async def test_stop_enrollment(enrollment_service: EnrollmentService, db_session: AsyncSession, user: User):
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")

    enrollment = await enrollment_service.stop_enrollment(db_session, user=user, habit_id=MEDITATION)

    assert enrollment.is_active is False
    assert enrollment.is_completed is False
    # Прогресс брошенной попытки сохраняется в истории
    assert enrollment.progress_percentage == 33


async def test_stop_without_active_enrollment(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    with pytest.raises(NotFoundException):
        await enrollment_service.stop_enrollment(db_session, user=user, habit_id=MEDITATION)


async def test_reset_enrollment(enrollment_service: EnrollmentService, db_session: AsyncSession, user: User):
    """Сброс удаляет отметки и обнуляет счетчики, участие остается активным."""
    started = await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")
    await complete(enrollment_service, db_session, user, MEDITATION, day=2, task_id="body-scan")

    enrollment = await enrollment_service.reset_enrollment(db_session, user=user, habit_id=MEDITATION)

    assert enrollment.id == started.id
    assert enrollment.is_active is True
    assert enrollment.completion_records == []
    assert enrollment.streak == 0
    assert enrollment.longest_streak == 0
    assert enrollment.total_completed_tasks == 0
    assert enrollment.progress_percentage == 0
    assert enrollment.last_completed_date is None
    assert enrollment.current_day == 1

    records_count = await db_session.scalar(select(func.count(CompletionRecord.id)))
    assert records_count == 0


# --- Чтение ---


async def test_get_enrollment_with_task_statuses(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=2, task_id="body-scan")

    details = await enrollment_service.get_enrollment(db_session, user=user, habit_id=MEDITATION)

    assert details.total_task_count == 3
    statuses = {task.task_id: task for task in details.tasks}
    assert statuses["body-scan"].is_completed is True
    assert statuses["body-scan"].completed_days == [2]
    assert statuses["breathe"].is_completed is False


async def test_today_task(enrollment_service: EnrollmentService, db_session: AsyncSession, user: User):
    """В первый день в задании только задачи первого дня."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")

    today = await enrollment_service.get_today_task(db_session, user=user, habit_id=MEDITATION)

    assert today is not None
    assert today.day == 1
    assert [task.task_id for task in today.tasks] == ["breathe"]
    assert today.tasks[0].is_completed is True
    assert len(today.completion_records) == 1


async def test_today_task_without_enrollment(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    assert await enrollment_service.get_today_task(db_session, user=user, habit_id=MEDITATION) is None


async def test_list_today_tasks(enrollment_service: EnrollmentService, db_session: AsyncSession, user: User):
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=READING)

    today_tasks = await enrollment_service.list_today_tasks(db_session, user=user)

    assert {today.habit_id for today in today_tasks} == {MEDITATION, READING}


async def test_aggregate_stats(enrollment_service: EnrollmentService, db_session: AsyncSession, user: User):
    """Статистика по активной, брошенной и завершенной попыткам."""
    await enrollment_service.start_enrollment(db_session, user=user, habit_id=MEDITATION)
    await complete(enrollment_service, db_session, user, MEDITATION, day=1, task_id="breathe")

    await enrollment_service.start_enrollment(db_session, user=user, habit_id=READING)
    await enrollment_service.stop_enrollment(db_session, user=user, habit_id=READING)

    await enrollment_service.start_enrollment(db_session, user=user, habit_id=READING)
    await complete(enrollment_service, db_session, user, READING, day=1, task_id="read-10-pages")

    stats = await enrollment_service.get_aggregate_stats(db_session, user=user)

    assert stats.total_count == 3
    assert stats.active_count == 1
    assert stats.completed_count == 1
    assert stats.given_up_count == 1
    assert stats.total_completed_tasks == 2
    assert stats.average_progress == 33
    assert stats.completion_rate == 33
    assert stats.completions_last_7_days == 2
    assert stats.completions_last_30_days == 2
    assert stats.longest_streak == 1


async def test_aggregate_stats_without_enrollments(
    enrollment_service: EnrollmentService, db_session: AsyncSession, user: User
):
    stats = await enrollment_service.get_aggregate_stats(db_session, user=user)

    assert stats.total_count == 0
    assert stats.average_progress == 0
    assert stats.completion_rate == 0
    assert stats.reward_units == 0
