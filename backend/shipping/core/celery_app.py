"""
Celery application for background jobs.

Beat schedule:
- Manual coordination sweep (reminders + overdue alerts)
- Daily snapshot retention purge
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init

from shipping.core.config import settings
from shipping.core.logging import setup_logging
from shipping.core.sentry import init_sentry

celery_app = Celery(
    "shipping",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["shipping.tasks.coordination"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
)

celery_app.conf.beat_schedule = {
    "sweep-manual-tasks": {
        "task": "shipping.tasks.coordination.sweep_manual_tasks",
        "schedule": float(settings.TASK_SWEEP_INTERVAL_SECONDS),
    },
    "purge-expired-snapshots": {
        "task": "shipping.tasks.coordination.purge_expired_snapshots",
        "schedule": crontab(hour=settings.SNAPSHOT_PURGE_HOUR, minute=0),
    },
}


@worker_process_init.connect
def init_worker_process(**kwargs):
    setup_logging(level=settings.LOG_LEVEL, json_format=not settings.DEBUG)
    init_sentry()
