# otohub_billing/workers/celery_app.py
"""
Celery app for billing background jobs.

Usage (dev):
  celery -A otohub_billing.workers.celery_app.celery_app worker -l info
  celery -A otohub_billing.workers.celery_app.celery_app beat -l info
"""
from datetime import timedelta

from celery import Celery

from otohub_billing.core.config import settings

celery_app = Celery(
    "otohub_billing",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["otohub_billing.workers.lifecycle_worker"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "lifecycle-tick": {
            "task": "run_lifecycle_tick",
            "schedule": timedelta(minutes=settings.SCHEDULER_INTERVAL_MINUTES),
        },
    },
)
