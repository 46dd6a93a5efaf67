"""
Приложение Celery: фоновая обработка событий завершения программ (награда и ростер).

Брокер и бэкенд результатов - Redis. Запуск: `celery -A src.worker.celery_app worker`.
"""

from celery import Celery

from src.api.core.config import settings
from src.core_shared.sentry_sdk_setup import setup_sentry

if settings.SENTRY_DSN:
    setup_sentry(settings, service_name="Worker")

celery_app = Celery("habit_enrollment_worker", broker=settings.REDIS_URL, backend=settings.REDIS_URL)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    # Подтверждение после выполнения: если воркер упал посреди обработки, событие будет доставлено снова
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # Состояние обработки хранится в completion_events, результаты задач нужны недолго
    result_expires=86400,
)

# Ищет модуль src.worker.tasks
celery_app.autodiscover_tasks(["src.worker"])
