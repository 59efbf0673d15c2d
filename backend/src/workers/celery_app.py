"""Celery application for background event persistence and orphan cleanup.

Start a worker and the beat scheduler with:
    celery -A workers.celery_app worker --loglevel=info
    celery -A workers.celery_app beat --loglevel=info
"""

from celery import Celery

from config import get_settings

settings = get_settings()

celery_app = Celery(
    "staging",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["workers.event_worker", "workers.reconcile_worker"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_ignore_result=True,
)

celery_app.conf.beat_schedule = {
    "reconcile-orphans": {
        "task": "orphans.reconcile",
        "schedule": float(settings.ORPHAN_RECONCILE_INTERVAL_SECONDS),
        "options": {
            "expires": settings.ORPHAN_RECONCILE_INTERVAL_SECONDS,  # Skip if the next run is already due
        },
    },
}
