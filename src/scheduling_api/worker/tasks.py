"""Bulk import Celery tasks."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncGenerator, Dict, Optional

from celery import shared_task
from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_api.config import get_settings
from scheduling_api.database.connection import create_task_engine
from scheduling_api.database.session import session_scope
from scheduling_api.services.bulk_import_service import BulkImportService
from scheduling_api.services.file_storage import FileStorage
from scheduling_api.utils.logging import log_context
from scheduling_api.utils.time import utcnow
from scheduling_api.worker.async_helpers import run_async
from scheduling_api.worker.celery_app import PROCESS_UPLOAD_TASK, SWEEP_STUCK_UPLOADS_TASK

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


@asynccontextmanager
async def worker_sessions(
    session_factory: Optional[SessionFactory] = None,
) -> AsyncGenerator[SessionFactory, None]:
    """The given factory, or one on a task-scoped engine disposed afterwards."""
    if session_factory is not None:
        yield session_factory
        return
    engine = create_task_engine()
    try:
        yield async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )
    finally:
        await engine.dispose()


async def import_upload(
    upload_id: str, file_path: str, session_factory: Optional[SessionFactory] = None
) -> bool:
    """Run the row import of one stored upload. False if it was already closed."""
    async with worker_sessions(session_factory) as factory:
        async with session_scope(factory) as session:
            service = BulkImportService(session, FileStorage.from_settings())
            return await service.process(upload_id, file_path)


async def fail_upload(
    upload_id: str, message: str, session_factory: Optional[SessionFactory] = None
) -> bool:
    async with worker_sessions(session_factory) as factory:
        async with session_scope(factory) as session:
            service = BulkImportService(session, FileStorage.from_settings())
            return await service.mark_failed(upload_id, message)


async def fail_stuck_uploads(
    session_factory: Optional[SessionFactory] = None,
    stuck_after_minutes: Optional[int] = None,
) -> int:
    """Fail uploads left ``processing`` for longer than ``stuck_after_minutes``."""
    if stuck_after_minutes is None:
        stuck_after_minutes = get_settings().imports.stuck_after_minutes
    cutoff = utcnow() - timedelta(minutes=stuck_after_minutes)
    async with worker_sessions(session_factory) as factory:
        async with session_scope(factory) as session:
            service = BulkImportService(session, FileStorage.from_settings())
            count = await service.fail_stuck(cutoff)
    if count:
        logger.warning(f"Marked {count} stuck bulk uploads as failed")
    return count


def _close_as_failed(upload_id: str, message: str) -> Dict[str, Any]:
    try:
        run_async(fail_upload(upload_id, message))
    except Exception as e:
        logger.error(f"Could not mark bulk upload {upload_id} as failed: {e}", exc_info=True)
    return {"upload_id": upload_id, "status": "failed", "error": message}


@shared_task(name=PROCESS_UPLOAD_TASK)
def process_bulk_upload(upload_id: str, file_path: str) -> Dict[str, Any]:
    """
    Import every row of a stored upload.

    Sent by the upload endpoint once the file is stored. A run that passes
    the soft time limit or raises leaves the upload ``failed``.
    """
    with log_context(upload_id=upload_id):
        return _process(upload_id, file_path)


def _process(upload_id: str, file_path: str) -> Dict[str, Any]:
    logger.info(f"Processing bulk upload {upload_id}")
    try:
        completed = run_async(import_upload(upload_id, file_path))
    except SoftTimeLimitExceeded:
        timeout = get_settings().imports.job_timeout_seconds
        logger.error(f"Bulk upload {upload_id} timed out after {timeout} seconds")
        return _close_as_failed(upload_id, f"Processing timed out after {timeout} seconds")
    except Exception as e:
        logger.error(f"Bulk upload {upload_id} crashed: {e}", exc_info=True)
        return _close_as_failed(upload_id, f"File processing failed: {e}")

    return {"upload_id": upload_id, "status": "processed" if completed else "skipped"}


@shared_task(name=SWEEP_STUCK_UPLOADS_TASK)
def sweep_stuck_uploads() -> Dict[str, int]:
    """
    Fail uploads whose processing was interrupted.

    This task is triggered by Celery Beat every ``sweep_interval_minutes``.
    """
    return {"failed": run_async(fail_stuck_uploads())}
