"""Отправка событий завершения программ в фоновую обработку."""

from typing import Protocol

from src.api.core.logging import api_log as log
from src.worker.celery_app import celery_app

PROCESS_COMPLETION_EVENT_TASK = "src.worker.tasks.process_completion_event_task"


class CompletionDispatcher(Protocol):
    """Получатель событий завершения (после фиксации транзакции)."""

    def dispatch(self, event_id: int) -> None: ...


class CeleryCompletionDispatcher:
    """
    Ставит задачу обработки события в очередь Celery.

    Задача отправляется по имени, без импорта модуля воркера в процесс API.
    """

    def dispatch(self, event_id: int) -> None:
        result = celery_app.send_task(PROCESS_COMPLETION_EVENT_TASK, args=[event_id])
        log.debug(f"Событие завершения ID {event_id} отправлено в очередь (task_id: {result.id}).")
