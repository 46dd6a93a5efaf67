"""Экземпляр настроенного логгера для сервиса участия в программах привычек."""

from src.core_shared.logging_setup import setup_logger

from .config import settings

# Логгер API: все модули api пишут через него
api_log = setup_logger(
    service_name="EnrollmentAPI",
    log_level_override=settings.LOG_LEVEL,
    log_to_file=settings.LOG_TO_FILE,
)
