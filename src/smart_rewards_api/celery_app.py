"""Celery application for queue-driven background jobs."""

from __future__ import annotations

from celery import Celery

from smart_rewards_api.core.settings import settings


celery_app = Celery(
    "smart_rewards_api",
    broker=settings.celery_broker_url or settings.redis_url,
    backend=settings.celery_result_backend or settings.redis_url,
)

celery_app.conf.update(
    task_default_queue=settings.celery_default_queue,
    timezone="UTC",
    broker_connection_retry_on_startup=True,
)

celery_app.autodiscover_tasks(["smart_rewards_api.celery_tasks"])

__all__ = ["celery_app"]
