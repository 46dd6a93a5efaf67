"""Сервис для работы с участиями пользователей в программах привычек."""

from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.clients import TaskCatalog
from src.api.core.exceptions import AppException, BadRequestException, ConflictException, NotFoundException
from src.api.core.logging import api_log as log
from src.api.models import CompletionEvent, CompletionRecord, HabitEnrollment, User
from src.api.repositories import CompletionEventRepository, EnrollmentRepository, UserRepository
from src.api.schemas import (
    CatalogTask,
    CompletionRecordSchemaRead,
    CompletionSchemaCreate,
    EnrollmentSchemaRead,
    EnrollmentSchemaReadWithTasks,
    EnrollmentStatsSchema,
    TaskStatusSchema,
    TodayTaskSchema,
    distinct_task_count,
    merge_tasks,
)
from src.api.utils.date_utils import get_today_date_for_user, get_user_timezone, utc_now

from .completion_dispatcher import CompletionDispatcher
from .progress_engine import MAX_PERCENTAGE, ProgressSnapshot, percent_of, recompute

# Необязательные поля отметки, которые перезаписываются только при явной передаче
OPTIONAL_COMPLETION_FIELDS = ("completion_time", "notes", "rating")


class EnrollmentService:
    """
    Сервис управления участиями (HabitEnrollment).

    Каждая изменяющая операция - одна транзакция, которая начинается с блокировки
    строки пользователя (SELECT ... FOR UPDATE): операции одного пользователя
    выполняются строго последовательно, операции разных пользователей - параллельно.
    Чтение блокировок не берет.

    Задачи программы берутся из каталога до открытия транзакции, чтобы сетевой запрос
    не удерживал блокировку.
    """

    def __init__(
        self,
        enrollment_repository: EnrollmentRepository,
        user_repository: UserRepository,
        event_repository: CompletionEventRepository,
        catalog: TaskCatalog,
        dispatcher: CompletionDispatcher,
    ):
        """
        Инициализирует сервис участий.

        Args:
            enrollment_repository (EnrollmentRepository): Хранилище участий.
            user_repository (UserRepository): Репозиторий пользователей (блокировка пользователя).
            event_repository (CompletionEventRepository): Outbox событий завершения.
            catalog (TaskCatalog): Каталог задач программ.
            dispatcher (CompletionDispatcher): Отправка событий завершения в обработку.
        """
        self.repository = enrollment_repository
        self.user_repository = user_repository
        self.event_repository = event_repository
        self.catalog = catalog
        self.dispatcher = dispatcher

    # --- Вспомогательные методы ---

    async def _get_tasks(self, habit_id: str) -> list[CatalogTask]:
        """Задачи программы из каталога, по одной записи на задачу."""
        return merge_tasks(await self.catalog.tasks_for(habit_id))

    async def _get_active_or_404(self, db_session: AsyncSession, *, user_id: int, habit_id: str) -> HabitEnrollment:
        """
        Получает активное участие или выбрасывает исключение.

        Raises:
            NotFoundException: Если активного участия нет (в том числе если программа уже завершена).
        """
        enrollment = await self.repository.get_active(db_session, user_id=user_id, habit_id=habit_id)

        if enrollment is None:
            raise NotFoundException(
                message=f"Активное участие в программе '{habit_id}' не найдено.",
                error_type="enrollment_not_found",
            )

        return enrollment

    @staticmethod
    def _apply_snapshot(enrollment: HabitEnrollment, snapshot: ProgressSnapshot) -> None:
        """Переносит пересчитанные метрики в участие."""
        enrollment.streak = snapshot.streak
        enrollment.longest_streak = snapshot.longest_streak
        enrollment.progress_percentage = snapshot.progress_percentage

    @staticmethod
    def _recompute(enrollment: HabitEnrollment, user: User, total_task_count: int, now: datetime) -> ProgressSnapshot:
        return recompute(
            enrollment.completion_records,
            total_task_count=total_task_count,
            today=get_today_date_for_user(user, now),
            tz=get_user_timezone(user),
            previous_longest=enrollment.longest_streak,
            previous_percentage=enrollment.progress_percentage,
        )

    @staticmethod
    def _validate_task(tasks: list[CatalogTask], completion: CompletionSchemaCreate, habit_id: str) -> None:
        """
        Проверяет, что задача есть в программе и назначена на указанный день.

        Задача без назначенных дней может быть отмечена в любой день.

        Raises:
            NotFoundException: Если задачи нет в каталоге программы.
            BadRequestException: Если задача не назначена на указанный день.
        """
        task = next((task for task in tasks if task.task_id == completion.task_id), None)

        if task is None:
            raise NotFoundException(
                message=f"Задача '{completion.task_id}' не найдена в программе '{habit_id}'.",
                error_type="task_not_found",
            )

        if task.days and completion.day not in task.days:
            raise BadRequestException(
                message=f"Задача '{completion.task_id}' не назначена на день {completion.day}.",
                error_type="task_day_mismatch",
                loc=["body", "day"],
            )

    @staticmethod
    def _task_statuses(
        tasks: list[CatalogTask], records: Sequence[CompletionRecord], day: int | None = None
    ) -> list[TaskStatusSchema]:
        """
        Статус задач каталога по отметкам участия.

        Если передан `day`, задача считается выполненной только при отметке в этот день.
        """
        statuses = []

        for task in tasks:
            completed_days = sorted({record.day for record in records if record.task_id == task.task_id})
            is_completed = day in completed_days if day is not None else bool(completed_days)
            statuses.append(
                TaskStatusSchema(
                    task_id=task.task_id,
                    days=task.days,
                    completed_days=completed_days,
                    is_completed=is_completed,
                )
            )

        return statuses

    def _build_today_task(
        self, enrollment: HabitEnrollment, tasks: list[CatalogTask], now: datetime
    ) -> TodayTaskSchema:
        """Собирает задание на текущий логический день участия. Ничего не отмечает."""
        day = enrollment.current_day_at(now)
        day_tasks = [task for task in tasks if day in task.days]
        day_records = [record for record in enrollment.completion_records if record.day == day]

        return TodayTaskSchema(
            enrollment_id=enrollment.id,
            habit_id=enrollment.habit_id,
            day=day,
            tasks=self._task_statuses(day_tasks, enrollment.completion_records, day=day),
            completion_records=[CompletionRecordSchemaRead.model_validate(record) for record in day_records],
        )

    def _dispatch_completion(self, event_id: int) -> None:
        """
        Отправляет событие завершения в обработку после фиксации транзакции.

        Событие уже сохранено в outbox: если брокер недоступен, его отправит повторно планировщик.
        """
        try:
            self.dispatcher.dispatch(event_id)

        except Exception as exc:
            log.warning(f"Не удалось отправить событие завершения ID {event_id}, оно будет отправлено повторно: {exc}")

    # --- Изменяющие операции ---

    async def start_enrollment(self, db_session: AsyncSession, *, user: User, habit_id: str) -> HabitEnrollment:
        """
        Начинает участие пользователя в программе.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            user (User): Текущий пользователь.
            habit_id (str): Идентификатор программы в каталоге.

        Returns:
            HabitEnrollment: Новое активное участие.

        Raises:
            NotFoundException: Если в каталоге нет задач программы.
            ConflictException: Если пользователь уже участвует в программе.
        """
        tasks = await self._get_tasks(habit_id)

        if not tasks:
            raise NotFoundException(
                message=f"Программа '{habit_id}' не найдена в каталоге.",
                error_type="habit_not_found",
            )

        try:
            await self.user_repository.lock_user(db_session, user_id=user.id)

            if await self.repository.get_active(db_session, user_id=user.id, habit_id=habit_id):
                raise ConflictException(
                    message=f"Пользователь уже участвует в программе '{habit_id}'.",
                    error_type="enrollment_already_active",
                )

            enrollment = HabitEnrollment(
                user_id=user.id,
                habit_id=habit_id,
                start_date=utc_now(),
                is_active=True,
                is_completed=False,
                streak=0,
                longest_streak=0,
                total_completed_tasks=0,
                progress_percentage=0,
                completion_records=[],
            )
            await self.repository.add(db_session, db_obj=enrollment)

            await db_session.commit()

        except IntegrityError as exc:
            # Частичный уникальный индекс: активное участие успели создать параллельно
            await db_session.rollback()
            log.warning(f"Параллельный старт программы '{habit_id}' пользователем ID {user.id}: {exc}")
            raise ConflictException(
                message=f"Пользователь уже участвует в программе '{habit_id}'.",
                error_type="enrollment_already_active",
            ) from exc

        except AppException:
            await db_session.rollback()
            raise

        except Exception as exc:
            await db_session.rollback()
            log.error(f"Ошибка при старте программы '{habit_id}' пользователем ID {user.id}: {exc}", exc_info=True)
            raise

        log.info(f"Пользователь ID {user.id} начал программу '{habit_id}' (участие ID {enrollment.id}).")

        return enrollment

    async def stop_enrollment(self, db_session: AsyncSession, *, user: User, habit_id: str) -> HabitEnrollment:
        """
        Прекращает участие (отказ от программы). Прогресс сохраняется в истории.

        Raises:
            NotFoundException: Если активного участия нет.
        """
        try:
            await self.user_repository.lock_user(db_session, user_id=user.id)
            enrollment = await self._get_active_or_404(db_session, user_id=user.id, habit_id=habit_id)

            enrollment.is_active = False

            await db_session.commit()

        except AppException:
            await db_session.rollback()
            raise

        except Exception as exc:
            await db_session.rollback()
            log.error(f"Ошибка при остановке программы '{habit_id}' пользователем ID {user.id}: {exc}", exc_info=True)
            raise

        log.info(f"Пользователь ID {user.id} прекратил программу '{habit_id}' (участие ID {enrollment.id}).")

        return enrollment

    async def reset_enrollment(self, db_session: AsyncSession, *, user: User, habit_id: str) -> HabitEnrollment:
        """
        Начинает активное участие заново: отметки удаляются, счетчики обнуляются, день снова первый.

        Raises:
            NotFoundException: Если активного участия нет.
        """
        try:
            await self.user_repository.lock_user(db_session, user_id=user.id)
            enrollment = await self._get_active_or_404(db_session, user_id=user.id, habit_id=habit_id)

            # delete-orphan: удаленные из коллекции отметки удаляются из БД при flush
            enrollment.completion_records.clear()
            enrollment.streak = 0
            enrollment.longest_streak = 0
            enrollment.total_completed_tasks = 0
            enrollment.progress_percentage = 0
            enrollment.last_completed_date = None
            enrollment.start_date = utc_now()

            await db_session.commit()

        except AppException:
            await db_session.rollback()
            raise

        except Exception as exc:
            await db_session.rollback()
            log.error(f"Ошибка при сбросе программы '{habit_id}' пользователем ID {user.id}: {exc}", exc_info=True)
            raise

        log.info(f"Пользователь ID {user.id} сбросил прогресс программы '{habit_id}' (участие ID {enrollment.id}).")

        return enrollment

    async def complete_task(
        self,
        db_session: AsyncSession,
        *,
        user: User,
        habit_id: str,
        completion: CompletionSchemaCreate,
    ) -> tuple[HabitEnrollment, bool]:
        """
        Отмечает задачу программы выполненной в указанный логический день.

        Повторная отметка той же пары (день, задача) обновляет момент отметки и явно переданные
        необязательные поля, но не увеличивает счетчик выполненных задач.
        Если после отметки выполнены все задачи программы, участие завершается,
        а в той же транзакции создается событие завершения (награда и ростер).

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            user (User): Текущий пользователь.
            habit_id (str): Идентификатор программы.
            completion (CompletionSchemaCreate): Данные отметки.

        Returns:
            tuple[HabitEnrollment, bool]: Участие и признак того, что эта отметка завершила программу.

        Raises:
            NotFoundException: Если нет активного участия или задачи в программе.
            BadRequestException: Если задача не назначена на указанный день.
        """
        tasks = await self._get_tasks(habit_id)

        # Отметка без задачи не проверяется по каталогу
        if completion.task_id is not None:
            self._validate_task(tasks, completion, habit_id)

        event: CompletionEvent | None = None

        try:
            locked_user = await self.user_repository.lock_user(db_session, user_id=user.id)
            enrollment = await self._get_active_or_404(db_session, user_id=user.id, habit_id=habit_id)
            now = utc_now()

            record = next(
                (
                    record
                    for record in enrollment.completion_records
                    if record.day == completion.day and record.task_id == completion.task_id
                ),
                None,
            )

            if record is not None:
                record.completed_at = now

                for field in OPTIONAL_COMPLETION_FIELDS:
                    if field in completion.model_fields_set:
                        value = getattr(completion, field)
                        setattr(record, field, "" if field == "notes" and value is None else value)

                log.debug(
                    f"Повторная отметка дня {completion.day}, задачи '{completion.task_id}' "
                    f"(участие ID {enrollment.id})."
                )

            else:
                enrollment.completion_records.append(
                    CompletionRecord(
                        day=completion.day,
                        task_id=completion.task_id,
                        completed_at=now,
                        completion_time=completion.completion_time,
                        notes=completion.notes or "",
                        rating=completion.rating,
                    )
                )
                enrollment.total_completed_tasks += 1
                enrollment.last_completed_date = now

            snapshot = self._recompute(enrollment, locked_user, distinct_task_count(tasks), now)
            self._apply_snapshot(enrollment, snapshot)

            if snapshot.is_completed:
                enrollment.is_completed = True
                enrollment.is_active = False
                enrollment.completed_at = now
                enrollment.progress_percentage = MAX_PERCENTAGE

                event = CompletionEvent(
                    user_id=user.id,
                    enrollment_id=enrollment.id,
                    habit_id=habit_id,
                    reward_granted=False,
                    roster_synced=False,
                    dispatched_at=now,
                    attempts=0,
                )
                await self.event_repository.add(db_session, db_obj=event)

            await db_session.commit()

        except AppException:
            await db_session.rollback()
            raise

        except Exception as exc:
            await db_session.rollback()
            log.error(
                f"Ошибка при отметке дня {completion.day}, задачи '{completion.task_id}' "
                f"программы '{habit_id}' пользователем ID {user.id}: {exc}",
                exc_info=True,
            )
            raise

        if event is not None:
            log.info(f"Пользователь ID {user.id} завершил программу '{habit_id}' (участие ID {enrollment.id}).")
            self._dispatch_completion(event.id)

        return enrollment, event is not None

    async def uncomplete_task(
        self,
        db_session: AsyncSession,
        *,
        user: User,
        habit_id: str,
        day: int,
        task_id: str | None = None,
    ) -> HabitEnrollment:
        """
        Снимает отметку о выполнении.

        Удаляется первая (в порядке добавления) отметка этого дня, а если передан `task_id` -
        этого дня и этой задачи. Если такой отметки нет, участие не меняется.

        Raises:
            NotFoundException: Если активного участия нет (завершенное участие не изменяется).
        """
        tasks = await self._get_tasks(habit_id)

        try:
            locked_user = await self.user_repository.lock_user(db_session, user_id=user.id)
            enrollment = await self._get_active_or_404(db_session, user_id=user.id, habit_id=habit_id)

            record = next(
                (
                    record
                    for record in enrollment.completion_records
                    if record.day == day and (task_id is None or record.task_id == task_id)
                ),
                None,
            )

            if record is None:
                log.debug(f"Отметка дня {day}, задачи '{task_id}' не найдена (участие ID {enrollment.id}).")
            else:
                enrollment.completion_records.remove(record)
                enrollment.total_completed_tasks = max(0, enrollment.total_completed_tasks - 1)

                snapshot = self._recompute(enrollment, locked_user, distinct_task_count(tasks), utc_now())
                self._apply_snapshot(enrollment, snapshot)

            await db_session.commit()

        except AppException:
            await db_session.rollback()
            raise

        except Exception as exc:
            await db_session.rollback()
            log.error(
                f"Ошибка при снятии отметки дня {day} программы '{habit_id}' пользователем ID {user.id}: {exc}",
                exc_info=True,
            )
            raise

        return enrollment

    # --- Чтение ---

    async def get_enrollment(
        self, db_session: AsyncSession, *, user: User, habit_id: str
    ) -> EnrollmentSchemaReadWithTasks:
        """
        Активное участие вместе со статусом каждой задачи программы.

        Raises:
            NotFoundException: Если активного участия нет.
        """
        enrollment = await self._get_active_or_404(db_session, user_id=user.id, habit_id=habit_id)
        tasks = await self._get_tasks(habit_id)

        return EnrollmentSchemaReadWithTasks(
            **EnrollmentSchemaRead.model_validate(enrollment).model_dump(),
            total_task_count=distinct_task_count(tasks),
            tasks=self._task_statuses(tasks, enrollment.completion_records),
        )

    async def list_active_enrollments(self, db_session: AsyncSession, *, user: User) -> Sequence[HabitEnrollment]:
        """Все активные участия пользователя."""
        return await self.repository.list_active(db_session, user_id=user.id)

    async def get_today_task(self, db_session: AsyncSession, *, user: User, habit_id: str) -> TodayTaskSchema | None:
        """
        Задание на текущий логический день участия.

        Returns:
            TodayTaskSchema | None: Задание или None, если активного участия нет.
        """
        enrollment = await self.repository.get_active(db_session, user_id=user.id, habit_id=habit_id)

        if enrollment is None:
            return None

        tasks = await self._get_tasks(habit_id)

        return self._build_today_task(enrollment, tasks, utc_now())

    async def list_today_tasks(self, db_session: AsyncSession, *, user: User) -> list[TodayTaskSchema]:
        """Задания на сегодня по всем активным участиям пользователя."""
        now = utc_now()
        today_tasks = []

        for enrollment in await self.repository.list_active(db_session, user_id=user.id):
            tasks = await self._get_tasks(enrollment.habit_id)
            today_tasks.append(self._build_today_task(enrollment, tasks, now))

        return today_tasks

    async def get_aggregate_stats(self, db_session: AsyncSession, *, user: User) -> EnrollmentStatsSchema:
        """Сводная статистика по всем участиям пользователя."""
        enrollments = await self.repository.list_for_user(db_session, user_id=user.id)
        now = utc_now()

        active = [enrollment for enrollment in enrollments if enrollment.is_active]
        completed_count = sum(1 for enrollment in enrollments if enrollment.is_completed)
        total_count = len(enrollments)

        return EnrollmentStatsSchema(
            active_count=len(active),
            completed_count=completed_count,
            given_up_count=total_count - len(active) - completed_count,
            total_count=total_count,
            total_completed_tasks=sum(enrollment.total_completed_tasks for enrollment in enrollments),
            total_streak=sum(enrollment.streak for enrollment in active),
            longest_streak=max((enrollment.longest_streak for enrollment in enrollments), default=0),
            average_progress=(
                percent_of(sum(enrollment.progress_percentage for enrollment in active), 100 * len(active))
                if active
                else 0
            ),
            completion_rate=percent_of(completed_count, total_count) if total_count else 0,
            completions_last_7_days=await self.repository.count_completions_since(
                db_session, user_id=user.id, since=now - timedelta(days=7)
            ),
            completions_last_30_days=await self.repository.count_completions_since(
                db_session, user_id=user.id, since=now - timedelta(days=30)
            ),
            reward_units=user.reward_units,
        )
