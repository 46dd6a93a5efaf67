"""
Процесс планировщика: периодически отправляет в очередь события завершения программ,
которые не удалось обработать с первого раза.

Запуск: `python -m src.scheduler.main`.
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.api.core.database import db
from src.core_shared.logging_setup import setup_logger
from src.core_shared.sentry_sdk_setup import setup_sentry
from src.scheduler.config import settings
from src.scheduler.tasks import redispatch_completion_events

log = setup_logger("SchedulerMain", log_level_override=settings.LOG_LEVEL, log_to_file=settings.LOG_TO_FILE)


def build_scheduler() -> AsyncIOScheduler:
    """Планировщик с единственной задачей: проход по outbox событий завершения."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        redispatch_completion_events,
        trigger=IntervalTrigger(minutes=settings.COMPLETION_EVENTS_SWEEP_INTERVAL_MINUTES),
        id="redispatch_completion_events_job",
        name="Повторная отправка необработанных событий завершения",
        replace_existing=True,
        # Проходы не перекрываются, пропущенные запуски схлопываются в один
        max_instances=1,
        coalesce=True,
    )

    return scheduler


async def main() -> None:
    if settings.SENTRY_DSN:
        setup_sentry(settings, service_name="Scheduler")

    try:
        await db.connect()
    except RuntimeError as exc:
        log.critical(f"Планировщик не запущен: {exc}")
        return

    scheduler = build_scheduler()
    scheduler.start()
    log.info(
        f"Планировщик запущен: проход по событиям завершения каждые "
        f"{settings.COMPLETION_EVENTS_SWEEP_INTERVAL_MINUTES} мин."
    )

    try:
        # Задачи выполняет APScheduler, здесь только удерживаем event loop
        await asyncio.Event().wait()

    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        log.info("Получен сигнал остановки планировщика.")

    finally:
        scheduler.shutdown(wait=False)
        await db.disconnect()
        log.info("Планировщик остановлен.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
