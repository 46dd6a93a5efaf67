"""
Расчет производных метрик участия: серии (стрики), процент прогресса и факт завершения программы.

Только чистые функции: без обращения к БД, каталогу и часам. "Сегодня" и часовой пояс
передаются вызывающим кодом, поэтому расчет детерминирован и легко тестируется.

Серия считается по логическому номеру дня (`day`), а не по календарной дате отметки:
если пользователь отмечает дни не по порядку календаря, серия все равно растет,
пока номера дней идут подряд. Календарная дата используется только для того,
чтобы решить, "жива" ли серия (последняя подходящая отметка сделана сегодня или вчера).
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, Protocol, Sequence

from pydantic import BaseModel, Field

from src.api.utils.date_utils import as_utc

MAX_PERCENTAGE = 100


class CompletionLike(Protocol):
    """То, что движку нужно знать об отметке о выполнении."""

    day: int
    task_id: str | None
    completed_at: datetime


class StreakResult(BaseModel):
    """Результат расчета серий."""

    current: int = Field(..., ge=0, description="Текущая серия")
    longest_candidate: int = Field(..., ge=0, description="Максимальная серия среди текущих отметок")
    longest: int = Field(..., ge=0, description="Лучшая серия с учетом предыдущего значения")


class ProgressSnapshot(BaseModel):
    """Пересчитанные метрики участия."""

    streak: int = Field(..., ge=0)
    longest_streak: int = Field(..., ge=0)
    progress_percentage: int = Field(..., ge=0, le=MAX_PERCENTAGE)
    is_completed: bool


def percent_of(part: int, whole: int) -> int:
    """Доля `part` от `whole` в процентах, округленная половиной вверх (whole > 0)."""
    # round-half-up в целых числах: floor(100 * part / whole + 1/2)
    return (200 * part + whole) // (2 * whole)


def count_distinct_tasks(records: Iterable[CompletionLike]) -> int:
    """Количество различных непустых task_id среди отметок."""
    return len({record.task_id for record in records if record.task_id})


def compute_streak(
    records: Sequence[CompletionLike],
    *,
    today: date,
    tz: tzinfo,
    previous_longest: int = 0,
) -> StreakResult:
    """
    Считает текущую и лучшую серии.

    Отметки сортируются по `day`. Счетчик начинается с 1 на первой отметке и растет на 1,
    если номер дня ровно на единицу больше предыдущего, иначе сбрасывается в 1.
    Текущая серия - значение счетчика на последней (в порядке сортировки) отметке,
    сделанной сегодня или вчера по часовому поясу пользователя; если таких нет - 0.

    Args:
        records: Отметки о выполнении.
        today: Дата "сегодня" для пользователя.
        tz: Часовой пояс пользователя.
        previous_longest: Сохраненная ранее лучшая серия.

    Returns:
        StreakResult: Текущая серия и лучшая серия.
    """
    yesterday = today - timedelta(days=1)
    sorted_records = sorted(records, key=lambda record: record.day)

    current = 0
    longest_candidate = 0
    running = 0
    previous_day: int | None = None

    for record in sorted_records:
        if previous_day is not None and record.day == previous_day + 1:
            running += 1
        else:
            running = 1

        longest_candidate = max(longest_candidate, running)
        previous_day = record.day

        completed_on = as_utc(record.completed_at).astimezone(tz).date()
        if completed_on in (today, yesterday):
            current = running

    return StreakResult(
        current=current,
        longest_candidate=longest_candidate,
        longest=max(previous_longest, longest_candidate),
    )


def compute_progress_percentage(
    records: Iterable[CompletionLike],
    total_task_count: int,
    previous: int = 0,
) -> int:
    """
    Доля различных выполненных задач программы в процентах.

    При пустом каталоге (`total_task_count == 0`) возвращается прежнее значение.
    Округление - половина вверх; результат всегда в диапазоне 0..100.
    """
    if total_task_count <= 0:
        return min(max(previous, 0), MAX_PERCENTAGE)

    percentage = percent_of(count_distinct_tasks(records), total_task_count)

    return min(max(percentage, 0), MAX_PERCENTAGE)


def detect_completion(records: Iterable[CompletionLike], total_task_count: int) -> bool:
    """Программа завершена, если выполнены все различные задачи каталога."""
    return total_task_count > 0 and count_distinct_tasks(records) == total_task_count


def recompute(
    records: Sequence[CompletionLike],
    *,
    total_task_count: int,
    today: date,
    tz: tzinfo,
    previous_longest: int = 0,
    previous_percentage: int = 0,
) -> ProgressSnapshot:
    """Пересчитывает все производные метрики участия разом."""
    streak = compute_streak(records, today=today, tz=tz, previous_longest=previous_longest)

    return ProgressSnapshot(
        streak=streak.current,
        longest_streak=streak.longest,
        progress_percentage=compute_progress_percentage(records, total_task_count, previous=previous_percentage),
        is_completed=detect_completion(records, total_task_count),
    )
