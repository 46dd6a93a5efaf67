"""Инициализация модуля схем Pydantic."""

from .auth_schema import TokenPayload
from .base_schema import BaseSchema
from .catalog_schema import CatalogTask, distinct_task_count, merge_tasks
from .enrollment_schema import (
    CompletionRecordSchemaRead,
    CompletionResultSchema,
    CompletionSchemaCreate,
    EnrollmentSchemaCreate,
    EnrollmentSchemaRead,
    EnrollmentSchemaReadWithTasks,
    EnrollmentStatsSchema,
    TaskStatusSchema,
    TodayTaskSchema,
)

__all__ = [
    "BaseSchema",
    "TokenPayload",
    "CatalogTask",
    "distinct_task_count",
    "merge_tasks",
    "EnrollmentSchemaCreate",
    "EnrollmentSchemaRead",
    "EnrollmentSchemaReadWithTasks",
    "CompletionRecordSchemaRead",
    "CompletionSchemaCreate",
    "CompletionResultSchema",
    "TaskStatusSchema",
    "TodayTaskSchema",
    "EnrollmentStatsSchema",
]
