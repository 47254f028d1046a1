"""Celery application configuration."""

from typing import Optional

from celery import Celery
from celery.schedules import crontab

from scheduling_api.config import Settings, get_settings

PROCESS_UPLOAD_TASK = "scheduling_api.worker.tasks.process_bulk_upload"
SWEEP_STUCK_UPLOADS_TASK = "scheduling_api.worker.tasks.sweep_stuck_uploads"


def create_celery_app(settings: Optional[Settings] = None) -> Celery:
    """Build the Celery app; the broker defaults to the configured Redis."""
    settings = settings or get_settings()
    imports = settings.imports
    broker = imports.broker_url or settings.redis.url

    app = Celery(
        "scheduling_api",
        broker=broker,
        backend=imports.result_backend or broker,
        include=["scheduling_api.worker.tasks"],
    )

    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_track_started=True,
        task_soft_time_limit=imports.job_timeout_seconds,
        task_time_limit=imports.job_timeout_seconds + 60,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=imports.max_workers,
        result_expires=3600,
    )

    app.conf.beat_schedule = {
        "sweep-stuck-uploads": {
            "task": SWEEP_STUCK_UPLOADS_TASK,
            "schedule": crontab(minute=f"*/{imports.sweep_interval_minutes}"),
        },
    }
    return app


celery_app = create_celery_app()
