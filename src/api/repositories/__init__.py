"""Инициализация модуля репозиториев."""

from .base_repository import BaseRepository
from .completion_event_repository import CompletionEventRepository
from .enrollment_repository import EnrollmentRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "EnrollmentRepository",
    "CompletionEventRepository",
]
