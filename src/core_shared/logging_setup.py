"""Логирование (Loguru) для всех процессов сервиса: API, воркера Celery и планировщика."""

import os
import sys
from typing import TYPE_CHECKING

from loguru import logger as global_loguru_logger
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from loguru import Logger


class LogConfig(BaseModel):
    """Параметры обработчиков Loguru."""

    level: str = Field(default="INFO", description="Уровень логирования")
    format: str = Field(
        default=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[service_name]}</cyan> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        ),
        description="Формат строки лога",
    )
    serialize: bool = Field(default=False, description="Писать логи в JSON")
    file_enabled: bool = Field(default=True, description="Дублировать логи в файл")
    file_path: str = Field(default="logs/{service_name}_{time:YYYY-MM-DD}.log", description="Шаблон пути к файлу")
    rotation: str = Field(default="10 MB", description="Ротация файла по размеру")
    retention: str = Field(default="7 days", description="Срок хранения файлов")


def _add_file_sink(service_logger: "Logger", config: LogConfig, service_name: str) -> None:
    """Добавляет файловый обработчик. Если директорию создать нельзя, пишем только в stderr."""
    file_path = config.file_path.replace("{service_name}", service_name.lower())
    # Директория - часть пути до подстановки времени
    log_dir = os.path.dirname(file_path.split("{time")[0])

    try:
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    except OSError as exc:
        service_logger.warning(f"Логи '{service_name}' не будут писаться в файл: нет доступа к '{log_dir}' ({exc}).")
        return

    service_logger.add(
        file_path,
        level=config.level,
        format=config.format,
        rotation=config.rotation,
        retention=config.retention,
        serialize=config.serialize,
        encoding="utf-8",
    )


def setup_logger(
    service_name: str,
    log_config: LogConfig | None = None,
    log_level_override: str | None = None,
    log_to_file: bool | None = None,
) -> "Logger":
    """
    Настраивает Loguru и возвращает логгер, привязанный к имени процесса.

    Предыдущие обработчики удаляются, поэтому повторный вызов (например, в тестах)
    не дублирует строки лога.

    Args:
        service_name: Имя процесса в логах ("EnrollmentAPI", "Worker", "Scheduler").
        log_config: Параметры обработчиков. По умолчанию - LogConfig().
        log_level_override: Уровень логирования поверх log_config.
        log_to_file: Включает или выключает файловый обработчик поверх log_config.

    Returns:
        Логгер Loguru с `service_name` в `extra`.
    """
    config = (log_config or LogConfig()).model_copy()
    config.level = (log_level_override or config.level).upper()

    if log_to_file is not None:
        config.file_enabled = log_to_file

    global_loguru_logger.remove()
    service_logger = global_loguru_logger.bind(service_name=service_name)

    service_logger.add(
        sys.stderr,
        level=config.level,
        format=config.format,
        colorize=True,
        serialize=config.serialize,
    )

    if config.file_enabled:
        _add_file_sink(service_logger, config, service_name)

    service_logger.debug(f"Loguru сконфигурирован для '{service_name}', уровень {config.level}.")

    return service_logger


__all__ = ["setup_logger", "LogConfig"]
