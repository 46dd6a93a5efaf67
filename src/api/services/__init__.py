"""Инициализация модуля сервисов."""

from .completion_dispatcher import CeleryCompletionDispatcher, CompletionDispatcher
from .enrollment_service import EnrollmentService
from .reward_notifier import RewardNotifier

__all__ = [
    "CompletionDispatcher",
    "CeleryCompletionDispatcher",
    "EnrollmentService",
    "RewardNotifier",
]
