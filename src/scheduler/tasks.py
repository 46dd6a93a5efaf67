"""
Задачи планировщика.

Повторная отправка событий завершения программ, которые не были обработаны:
отправка сразу после фиксации не удалась (брокер недоступен), воркер упал
или ростер программы не принял прогресс.
"""

from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.config import settings as api_settings
from src.api.core.database import db
from src.api.models import CompletionEvent
from src.api.repositories import CompletionEventRepository
from src.api.services import CeleryCompletionDispatcher, CompletionDispatcher
from src.api.utils.date_utils import utc_now
from src.core_shared.logging_setup import setup_logger
from src.scheduler.config import settings

log = setup_logger("SchedulerTasks", log_level_override=settings.LOG_LEVEL, log_to_file=settings.LOG_TO_FILE)


async def sweep_completion_events(
    db_session: AsyncSession,
    dispatcher: CompletionDispatcher,
    *,
    stale_after: timedelta,
    batch_size: int,
    now: datetime | None = None,
) -> int:
    """
    Отправляет в обработку необработанные события, последняя отправка которых устарела.

    Args:
        db_session (AsyncSession): Асинхронная сессия базы данных.
        dispatcher (CompletionDispatcher): Отправка событий в очередь.
        stale_after (timedelta): Через сколько после последней отправки событие отправляется снова.
        batch_size (int): Максимум событий за проход.
        now (datetime | None): Текущий момент (по умолчанию - сейчас).

    Returns:
        int: Количество отправленных событий.
    """
    now = now or utc_now()
    event_repo = CompletionEventRepository(CompletionEvent)
    dispatched = 0

    try:
        events = await event_repo.list_pending(db_session, dispatched_before=now - stale_after, limit=batch_size)

        for event in events:
            try:
                dispatcher.dispatch(event.id)
            except Exception as exc:
                # Брокер недоступен: остальные события этого прохода тоже не уйдут
                log.error(f"Не удалось отправить событие завершения ID {event.id}: {exc}")
                break

            event.dispatched_at = now
            dispatched += 1

        await db_session.commit()

    except Exception as exc:
        await db_session.rollback()
        log.error(f"Ошибка при повторной отправке событий завершения: {exc}", exc_info=True)
        raise

    if dispatched:
        log.info(f"Повторно отправлено событий завершения: {dispatched}.")
    else:
        log.debug("Нет событий завершения для повторной отправки.")

    return dispatched


async def redispatch_completion_events() -> None:
    """Периодическая задача планировщика: один проход по необработанным событиям."""
    async with db.session() as session:
        try:
            await sweep_completion_events(
                session,
                CeleryCompletionDispatcher(),
                stale_after=timedelta(minutes=api_settings.COMPLETION_EVENTS_SWEEP_MINUTES),
                batch_size=settings.COMPLETION_EVENTS_SWEEP_BATCH_SIZE,
            )
        except Exception as exc:
            # Следующий запуск повторит проход, планировщик продолжает работу
            log.error(f"Проход по событиям завершения прерван: {exc}")
