"""Репозиторий для работы с моделью User."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.exceptions import NotFoundException
from src.api.core.logging import api_log as log
from src.api.models import User

from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    """
    Репозиторий пользователей.

    Кроме чтения служит журналом наград: `increment_reward_units` - единственный способ
    изменить счетчик `reward_units`.
    """

    async def lock_user(self, db_session: AsyncSession, *, user_id: int) -> User:
        """
        Блокирует строку пользователя до конца транзакции.

        Все изменяющие операции с участиями пользователя начинаются с этой блокировки,
        поэтому они выполняются строго последовательно.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            user_id (int): ID пользователя.

        Returns:
            User: Заблокированный пользователь.

        Raises:
            NotFoundException: Если пользователь не найден.
        """
        user = await self.get_by_id_for_update(db_session, obj_id=user_id)

        if user is None:
            raise NotFoundException(message=f"Пользователь с ID {user_id} не найден.", error_type="user_not_found")

        return user

    async def increment_reward_units(self, db_session: AsyncSession, *, user_id: int, units: int = 1) -> User:
        """
        Начисляет пользователю награды.

        Изменение только добавляется в сессию: фиксирует транзакцию вызывающий код,
        вместе с отметкой о выдаче награды.

        Args:
            db_session (AsyncSession): Асинхронная сессия базы данных.
            user_id (int): ID пользователя.
            units (int): Количество наград (положительное).

        Returns:
            User: Пользователь с обновленным счетчиком.
        """
        if units <= 0:
            raise ValueError(f"Количество наград должно быть положительным, получено: {units}")

        user = await self.lock_user(db_session, user_id=user_id)
        user.reward_units += units
        await db_session.flush()

        log.info(f"Пользователю ID {user_id} начислено наград: {units} (всего: {user.reward_units}).")

        return user
