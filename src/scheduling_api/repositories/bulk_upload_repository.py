"""Bulk upload repository for database operations."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import BulkUpload, BulkUploadError, UploadStatus
from scheduling_api.exceptions import DatabaseError
from scheduling_api.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class BulkUploadRepository(BaseRepository[BulkUpload]):
    """Repository for BulkUpload and its row errors."""

    def __init__(self, session: AsyncSession):
        super().__init__(BulkUpload, session)

    async def history(
        self, uploaded_by: Optional[str], status: Optional[str], page: int, limit: int
    ) -> Tuple[List[BulkUpload], int]:
        """Uploads newest first, optionally restricted to one uploader and status."""
        query = select(BulkUpload)
        if uploaded_by is not None:
            query = query.where(BulkUpload.uploaded_by == uploaded_by)
        if status:
            query = query.where(BulkUpload.status == status)
        query = query.order_by(BulkUpload.created_at.desc(), BulkUpload.id)
        return await self.paginate(query, page, limit)

    async def complete(
        self,
        upload_id: str,
        status: UploadStatus,
        total_records: int,
        successful_records: int,
        errors: Sequence[Dict[str, Any]],
        processed_at: datetime,
        processing_time: int,
    ) -> bool:
        """
        Move a processing upload to a terminal status and store its row errors.

        The transition is guarded on ``status = processing`` so a terminal
        record is never rewritten.

        Returns:
            False if the upload was missing or already terminal
        """
        try:
            result = await self.session.execute(
                update(BulkUpload)
                .where(
                    BulkUpload.id == upload_id,
                    BulkUpload.status == UploadStatus.PROCESSING.value,
                )
                .values(
                    status=status.value,
                    total_records=total_records,
                    successful_records=successful_records,
                    error_records=len(errors),
                    processed_at=processed_at,
                    processing_time=processing_time,
                    updated_at=processed_at,
                )
            )
            if (result.rowcount or 0) != 1:
                return False
            self.session.add_all(
                [
                    BulkUploadError(
                        upload_id=upload_id,
                        position=position,
                        row=error["row"],
                        field=error.get("field"),
                        message=error["message"],
                    )
                    for position, error in enumerate(errors)
                ]
            )
            await self.session.flush()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error completing bulk upload {upload_id}: {e}")
            await self.session.rollback()
            raise DatabaseError("Failed to update BulkUpload") from e

    async def errors_page(
        self, upload_id: str, page: int, limit: int
    ) -> Tuple[List[BulkUploadError], int]:
        """One page of row errors in the order they were recorded."""
        query = (
            select(BulkUploadError)
            .where(BulkUploadError.upload_id == upload_id)
            .order_by(BulkUploadError.position)
        )
        return await self.paginate(query, page, limit)

    async def stuck_before(self, cutoff: datetime) -> List[BulkUpload]:
        """Uploads still processing that were accepted before ``cutoff``."""
        query = select(BulkUpload).where(
            BulkUpload.status == UploadStatus.PROCESSING.value,
            BulkUpload.created_at < cutoff,
        )
        return list(await self.all(query))

    async def delete_upload(self, upload: BulkUpload) -> None:
        """Delete an upload together with its row errors."""
        try:
            await self.session.execute(
                delete(BulkUploadError).where(BulkUploadError.upload_id == upload.id)
            )
        except SQLAlchemyError as e:
            logger.error(f"Error deleting errors of bulk upload {upload.id}: {e}")
            raise DatabaseError("Failed to delete BulkUpload") from e
        await self.delete(upload)
