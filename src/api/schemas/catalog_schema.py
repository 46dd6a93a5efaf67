"""Схемы Pydantic для данных каталога привычек."""

from pydantic import Field, field_validator

from .base_schema import BaseSchema


class CatalogTask(BaseSchema):
    """Задача программы в каталоге и логические дни, в которые она назначена."""

    task_id: str = Field(..., min_length=1, max_length=100, description="Идентификатор задачи в каталоге")
    days: list[int] = Field(default_factory=list, description="Логические дни программы (начиная с 1)")

    @field_validator("days")
    @classmethod
    def normalize_days(cls, days: list[int]) -> list[int]:
        """Оставляет уникальные положительные дни по возрастанию."""
        return sorted({day for day in days if day >= 1})


def distinct_task_count(tasks: list[CatalogTask]) -> int:
    """Количество различных задач программы."""
    return len({task.task_id for task in tasks})


def merge_tasks(tasks: list[CatalogTask]) -> list[CatalogTask]:
    """
    Объединяет записи каталога с одинаковым `task_id`.

    Каталог может вернуть одну задачу несколькими записями с разными днями.
    Порядок задач - по первому появлению, дни объединяются.
    """
    merged: dict[str, set[int]] = {}

    for task in tasks:
        merged.setdefault(task.task_id, set()).update(task.days)

    return [CatalogTask(task_id=task_id, days=sorted(days)) for task_id, days in merged.items()]
