"""Sends bulk import jobs to the Celery worker."""

import logging

from celery import Celery
from kombu.exceptions import OperationalError

from scheduling_api.exceptions import ConflictError
from scheduling_api.worker.celery_app import PROCESS_UPLOAD_TASK, celery_app

logger = logging.getLogger(__name__)


class ImportQueue:
    """Broker-side handle for import jobs; tasks are sent by name."""

    def __init__(self, celery: Celery = celery_app):
        self.celery = celery

    def enqueue(self, upload_id: str, file_path: str) -> str:
        """
        Queue the import of a stored upload.

        Returns:
            Celery task id

        Raises:
            ConflictError: the broker cannot take the job
        """
        try:
            result = self.celery.send_task(PROCESS_UPLOAD_TASK, args=[upload_id, file_path])
        except OperationalError as e:
            logger.error(f"Could not queue bulk upload {upload_id}: {e}")
            raise ConflictError("Import queue is unavailable, try again later") from e
        logger.debug(f"Queued import task {result.id} for upload {upload_id}")
        return result.id
