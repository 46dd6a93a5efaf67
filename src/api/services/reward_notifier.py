"""Побочные эффекты завершения программы: выдача награды и синхронизация ростера."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.api.clients import EngagementRoster
from src.api.core.exceptions import AppException, NotFoundException
from src.api.core.logging import api_log as log
from src.api.models import CompletionEvent
from src.api.repositories import CompletionEventRepository, UserRepository
from src.api.services.progress_engine import MAX_PERCENTAGE


class RewardNotifier:
    """
    Обработчик событий завершения программ.

    Идемпотентен по событию: флаг `reward_granted` выставляется в той же транзакции,
    что и начисление награды, под блокировкой строки события. Поэтому повторная
    доставка того же события (ретрай Celery, проход планировщика) вторую награду не выдает.

    Синхронизация ростера - вторичный эффект: ее ошибка логируется и не откатывает
    ни награду, ни состояние участия; событие остается необработанным и будет отправлено повторно.
    """

    def __init__(
        self,
        event_repository: CompletionEventRepository,
        user_repository: UserRepository,
        roster: EngagementRoster,
    ):
        self.event_repository = event_repository
        self.user_repository = user_repository
        self.roster = roster

    async def on_habit_completed(self, db_session: AsyncSession, *, event_id: int) -> CompletionEvent:
        """
        Обрабатывает событие завершения программы.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            event_id (int): ID события завершения.

        Returns:
            CompletionEvent: Событие с актуальными флагами обработки.

        Raises:
            NotFoundException: Если событие не найдено.
        """
        try:
            event = await self.event_repository.get_by_id_for_update(db_session, obj_id=event_id)

            if event is None:
                raise NotFoundException(
                    message=f"Событие завершения с ID {event_id} не найдено.",
                    error_type="completion_event_not_found",
                )

            event.attempts += 1

            if event.reward_granted:
                log.info(f"Награда за событие ID {event_id} уже выдана, повторное начисление пропущено.")
            else:
                await self.user_repository.increment_reward_units(db_session, user_id=event.user_id, units=1)
                event.reward_granted = True

            await db_session.commit()

        except AppException:
            await db_session.rollback()
            raise

        except Exception as exc:
            await db_session.rollback()
            log.error(f"Ошибка при выдаче награды за событие ID {event_id}: {exc}", exc_info=True)
            raise

        if not event.roster_synced:
            await self._sync_roster(db_session, event)

        return event

    async def _sync_roster(self, db_session: AsyncSession, event: CompletionEvent) -> None:
        """Передает в ростер программы прогресс 100. Ошибка ростера не пробрасывается."""
        try:
            await self.roster.set_progress(event.habit_id, event.user_id, MAX_PERCENTAGE)

        except Exception as exc:
            log.warning(
                f"Не удалось синхронизировать ростер программы '{event.habit_id}' "
                f"для пользователя ID {event.user_id} (событие ID {event.id}): {exc}"
            )
            return

        try:
            event.roster_synced = True
            await db_session.commit()

        except Exception as exc:
            await db_session.rollback()
            log.error(f"Ошибка при сохранении статуса синхронизации события ID {event.id}: {exc}", exc_info=True)
            raise
