"""Репозиторий для работы с моделью CompletionEvent (outbox событий завершения)."""

from datetime import datetime
from typing import Sequence

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.logging import api_log as log
from src.api.models import CompletionEvent

from .base_repository import BaseRepository


class CompletionEventRepository(BaseRepository[CompletionEvent]):
    """Репозиторий событий завершения программ."""

    async def list_pending(
        self,
        db_session: AsyncSession,
        *,
        dispatched_before: datetime,
        limit: int = 100,
    ) -> Sequence[CompletionEvent]:
        """
        Необработанные события, которые пора отправить в обработку (повторно).

        Событие считается необработанным, пока не выдана награда или не синхронизирован ростер.
        Повторно отправляются события, которые не отправлялись вовсе или отправлялись
        раньше `dispatched_before`.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            dispatched_before (datetime): Граница "устаревшей" отправки.
            limit (int): Максимальное количество событий за один проход.

        Returns:
            Sequence[CompletionEvent]: События в порядке создания.
        """
        events = await self.get_multi_by_filter(
            db_session,
            or_(self.model.reward_granted.is_(False), self.model.roster_synced.is_(False)),
            or_(self.model.dispatched_at.is_(None), self.model.dispatched_at < dispatched_before),
            limit=limit,
            order_by=[self.model.id.asc()],
        )

        log.debug(f"Найдено необработанных событий завершения: {len(events)}.")

        return events
