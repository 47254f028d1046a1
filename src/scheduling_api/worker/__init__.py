"""Celery worker for background bulk user imports.

Run the worker and the beat scheduler with:

    celery -A scheduling_api.worker.celery_app:celery_app worker
    celery -A scheduling_api.worker.celery_app:celery_app beat
"""
