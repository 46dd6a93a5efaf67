from .base import Base, metadata_obj
from .completion_event import CompletionEvent
from .completion_record import CompletionRecord
from .habit_enrollment import HabitEnrollment
from .user import User

__all__ = [
    "metadata_obj",
    "Base",
    "User",
    "HabitEnrollment",
    "CompletionRecord",
    "CompletionEvent",
]
