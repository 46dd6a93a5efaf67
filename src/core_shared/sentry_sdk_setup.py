"""Sentry SDK для API, воркера Celery и планировщика."""

from logging import ERROR, INFO
from typing import Protocol

import sentry_sdk
from sentry_sdk.integrations import Integration
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.loguru import LoguruIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from .logging_setup import setup_logger

# Интеграции, которые нужны только конкретному процессу
PROCESS_INTEGRATIONS: dict[str, tuple[type[Integration], ...]] = {
    "EnrollmentAPI": (StarletteIntegration, FastApiIntegration),
    "Worker": (CeleryIntegration,),
}


class SentrySettingsProtocol(Protocol):
    """Поля настроек, нужные для инициализации Sentry."""

    SENTRY_DSN: str | None
    PRODUCTION: bool
    PROJECT_NAME: str
    API_VERSION: str
    LOG_LEVEL: str
    LOG_TO_FILE: bool


def _build_integrations(service_name: str) -> list[Integration]:
    # Breadcrumbs с INFO, события с ERROR
    integrations: list[Integration] = [SqlalchemyIntegration(), LoguruIntegration(level=INFO, event_level=ERROR)]

    for integration_class in PROCESS_INTEGRATIONS.get(service_name, ()):
        if integration_class in (StarletteIntegration, FastApiIntegration):
            integrations.append(integration_class(transaction_style="endpoint"))
        else:
            integrations.append(integration_class())

    return integrations


def setup_sentry(settings: SentrySettingsProtocol, service_name: str) -> None:
    """
    Инициализирует Sentry SDK для процесса, если задан SENTRY_DSN.

    Ошибка инициализации логируется и не мешает запуску процесса.

    Args:
        settings: Настройки процесса.
        service_name: "EnrollmentAPI", "Worker" или "Scheduler".
    """
    sentry_log = setup_logger(
        service_name=f"{service_name}Sentry",
        log_level_override=settings.LOG_LEVEL,
        log_to_file=settings.LOG_TO_FILE,
    )

    if not settings.SENTRY_DSN:
        sentry_log.info("SENTRY_DSN не задан, Sentry отключен.")
        return

    environment = "production" if settings.PRODUCTION else "development"
    # В production отправляется 10% трейсов
    sample_rate = 0.1 if settings.PRODUCTION else 1.0

    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=_build_integrations(service_name),
            environment=environment,
            traces_sample_rate=sample_rate,
            profiles_sample_rate=sample_rate,
            release=f"{settings.PROJECT_NAME}@{settings.API_VERSION}",
            server_name=service_name,
        )

    except Exception as exc:
        sentry_log.exception(f"Ошибка инициализации Sentry SDK для {service_name}: {exc}")
        return

    sentry_log.info(f"Sentry SDK инициализирован для {service_name} ({environment}, sample rate {sample_rate}).")
