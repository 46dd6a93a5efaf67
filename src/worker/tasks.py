"""
Фоновые задачи Celery.

Обработка событий завершения программ: выдача награды и синхронизация ростера программы.
"""

from typing import Any

from asgiref.sync import async_to_sync
from celery.utils.log import get_task_logger

from src.api.clients import EngagementRosterClient
from src.api.core.database import db
from src.api.core.exceptions import NotFoundException
from src.api.models import CompletionEvent, User
from src.api.repositories import CompletionEventRepository, UserRepository
from src.api.services import RewardNotifier
from src.api.services.completion_dispatcher import PROCESS_COMPLETION_EVENT_TASK
from src.worker.celery_app import celery_app

# Специальный логгер для Celery задач
logger = get_task_logger(__name__)

# Пауза перед повторной попыткой синхронизации ростера (секунды)
ROSTER_RETRY_COUNTDOWN = 60


async def _process_completion_event_async(event_id: int) -> dict[str, bool]:
    """
    Обрабатывает событие завершения в отдельном подключении к БД.

    Воркер живет отдельно от FastAPI (нет lifespan), поэтому подключение
    открывается и закрывается явно вокруг обработки.

    Args:
        event_id (int): ID события завершения.

    Returns:
        dict[str, bool]: Флаги обработки события.
    """
    await db.connect()
    roster = EngagementRosterClient()

    try:
        async with db.session() as session:
            notifier = RewardNotifier(
                event_repository=CompletionEventRepository(CompletionEvent),
                user_repository=UserRepository(User),
                roster=roster,
            )
            event = await notifier.on_habit_completed(session, event_id=event_id)

            return {"reward_granted": event.reward_granted, "roster_synced": event.roster_synced}

    finally:
        await roster.close()
        await db.disconnect()


@celery_app.task(
    bind=True,  # Дает доступ к экземпляру задачи (self)
    name=PROCESS_COMPLETION_EVENT_TASK,
    max_retries=5,
    default_retry_delay=10,
    acks_late=True,  # Подтверждать задачу только после выполнения
)
def process_completion_event_task(self: Any, event_id: int) -> str:
    """
    Задача обработки события завершения программы.

    Повторная доставка безопасна: награда выдается не более одного раза на событие.
    Если ростер недоступен, задача перезапускается; после исчерпания попыток
    событие остается необработанным и его повторно отправит планировщик.

    Args:
        event_id: ID события завершения.
    """
    try:
        result = async_to_sync(_process_completion_event_async)(event_id)

    except NotFoundException:
        logger.warning(f"Событие завершения ID {event_id} не найдено, обработка пропущена.")
        return "Событие не найдено"

    except Exception as exc:
        logger.error(f"Ошибка при обработке события завершения ID {event_id}: {exc}")
        raise self.retry(exc=exc)

    if result["roster_synced"]:
        logger.info(f"Событие завершения ID {event_id} обработано.")
        return "Обработано"

    if self.request.retries >= self.max_retries:
        logger.warning(f"Ростер для события ID {event_id} не синхронизирован, попытки исчерпаны.")
        return "Ростер не синхронизирован"

    logger.info(f"Награда за событие ID {event_id} выдана, синхронизация ростера будет повторена.")
    raise self.retry(countdown=ROSTER_RETRY_COUNTDOWN)
