"""Модуль вспомогательных утилит для работы с датами/таймзонами."""

from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.api.core.logging import api_log as log

if TYPE_CHECKING:  # pragma: no cover
    from src.api.models import User

ONE_DAY = timedelta(days=1)


def utc_now() -> datetime:
    """Текущий момент времени в UTC (aware datetime)."""
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """
    Приводит datetime к UTC.

    Naive значения считаются записанными в UTC.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)

    return moment.astimezone(timezone.utc)


def days_since(start: datetime, moment: datetime) -> int:
    """Количество полных суток, прошедших от `start` до `moment` (floor, может быть отрицательным)."""
    return (as_utc(moment) - as_utc(start)) // ONE_DAY


def get_user_timezone(user: "User") -> ZoneInfo:
    """
    Возвращает часовой пояс пользователя.

    Если часовой пояс пользователя некорректен, используется UTC.

    Args:
        user (User): Экземпляр пользователя.

    Returns:
        ZoneInfo: Часовой пояс пользователя.
    """
    # Если поле пустое или None, используем UTC как дефолт
    user_timezone_str = user.timezone or "UTC"

    try:
        return ZoneInfo(user_timezone_str)

    except (ZoneInfoNotFoundError, ValueError):
        # Несуществующая таймзона (например, опечатка) не должна ронять запрос
        log.warning(
            f"Некорректный часовой пояс '{user_timezone_str}' у пользователя ID {user.id}. "
            "Используется UTC по умолчанию."
        )
        return ZoneInfo("UTC")


def get_today_date_for_user(user: "User", moment: datetime | None = None) -> date:
    """
    Вычисляет дату "сегодня" с учетом часового пояса пользователя.

    Args:
        user (User): Экземпляр пользователя.
        moment (datetime | None): Момент времени (по умолчанию - сейчас).

    Returns:
        date: Дата, соответствующая "сегодня" для пользователя.
    """
    # astimezone() сохраняет абсолютный момент, но пересчитывает год/месяц/день под смещение пояса
    return as_utc(moment or utc_now()).astimezone(get_user_timezone(user)).date()
