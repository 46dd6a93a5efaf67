"""Схемы Pydantic для участий в программах и отметок о выполнении."""

from datetime import datetime

from pydantic import Field

from .base_schema import BaseSchema


class EnrollmentSchemaCreate(BaseSchema):
    """Схема для старта участия в программе."""

    habit_id: str = Field(..., min_length=1, max_length=100, description="Идентификатор программы в каталоге")


class CompletionRecordSchemaRead(BaseSchema):
    """Отметка о выполнении задачи."""

    day: int = Field(..., description="Логический день программы")
    task_id: str | None = Field(None, description="Идентификатор задачи (может отсутствовать)")
    completed_at: datetime = Field(..., description="Момент последней отметки")
    completion_time: int | None = Field(None, description="Затраченное время в минутах")
    notes: str = Field("", description="Заметка пользователя")
    rating: int | None = Field(None, description="Оценка задачи (1..5)")


class CompletionSchemaCreate(BaseSchema):
    """
    Схема для отметки задачи выполненной.

    Необязательные поля перезаписывают сохраненные значения только если переданы явно
    (учитывается `model_fields_set`), так что повторная отметка без них ничего не стирает.
    """

    day: int = Field(..., ge=1, description="Логический день программы")
    task_id: str | None = Field(None, min_length=1, max_length=100, description="Идентификатор задачи")
    completion_time: int | None = Field(None, ge=0, description="Затраченное время в минутах")
    notes: str | None = Field(None, max_length=500, description="Заметка пользователя")
    rating: int | None = Field(None, ge=1, le=5, description="Оценка задачи (1..5)")


class EnrollmentSchemaRead(BaseSchema):
    """Схема для чтения участия (ответа API)."""

    id: int = Field(..., description="ID участия")
    habit_id: str = Field(..., description="Идентификатор программы в каталоге")
    start_date: datetime = Field(..., description="Момент старта или последнего сброса")
    current_day: int = Field(..., description="Текущий логический день программы")
    is_active: bool = Field(..., description="Идет ли участие сейчас")
    is_completed: bool = Field(..., description="Завершена ли программа")
    completed_at: datetime | None = Field(None, description="Момент завершения программы")
    streak: int = Field(..., description="Текущая серия")
    longest_streak: int = Field(..., description="Лучшая серия")
    total_completed_tasks: int = Field(..., description="Количество выполненных пар (день, задача)")
    last_completed_date: datetime | None = Field(None, description="Момент последней новой отметки")
    progress_percentage: int = Field(..., description="Прогресс программы в процентах")
    completion_records: list[CompletionRecordSchemaRead] = Field(default_factory=list)


class CompletionResultSchema(BaseSchema):
    """Результат отметки задачи."""

    enrollment: EnrollmentSchemaRead
    is_habit_completed: bool = Field(..., description="Завершила ли эта отметка программу")


class TaskStatusSchema(BaseSchema):
    """Задача каталога и ее выполнение в рамках участия."""

    task_id: str = Field(..., description="Идентификатор задачи")
    days: list[int] = Field(default_factory=list, description="Дни, в которые назначена задача")
    completed_days: list[int] = Field(default_factory=list, description="Дни, в которые задача отмечена")
    is_completed: bool = Field(..., description="Отмечена ли задача (для задания на день - в этот день)")


class EnrollmentSchemaReadWithTasks(EnrollmentSchemaRead):
    """Участие вместе со статусом каждой задачи программы."""

    total_task_count: int = Field(..., description="Количество различных задач программы")
    tasks: list[TaskStatusSchema] = Field(default_factory=list)


class TodayTaskSchema(BaseSchema):
    """Задание на текущий логический день участия."""

    enrollment_id: int = Field(..., description="ID участия")
    habit_id: str = Field(..., description="Идентификатор программы")
    day: int = Field(..., description="Текущий логический день")
    tasks: list[TaskStatusSchema] = Field(default_factory=list, description="Задачи, назначенные на этот день")
    completion_records: list[CompletionRecordSchemaRead] = Field(
        default_factory=list, description="Отметки, сделанные за этот день"
    )


class EnrollmentStatsSchema(BaseSchema):
    """Сводная статистика участий пользователя."""

    active_count: int = Field(..., description="Активные участия")
    completed_count: int = Field(..., description="Завершенные программы")
    given_up_count: int = Field(..., description="Брошенные участия")
    total_count: int = Field(..., description="Всего участий")
    total_completed_tasks: int = Field(..., description="Всего выполненных задач")
    total_streak: int = Field(..., description="Сумма текущих серий активных участий")
    longest_streak: int = Field(..., description="Лучшая серия среди всех участий")
    average_progress: int = Field(..., description="Средний прогресс активных участий, %")
    completion_rate: int = Field(..., description="Доля завершенных программ, %")
    completions_last_7_days: int = Field(..., description="Отметок за последние 7 дней")
    completions_last_30_days: int = Field(..., description="Отметок за последние 30 дней")
    reward_units: int = Field(..., description="Полученные награды")
