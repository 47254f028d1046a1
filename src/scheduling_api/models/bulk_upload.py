"""Pydantic models for bulk user upload endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from scheduling_api.models.common import CamelModel


class UploadAccepted(CamelModel):
    """Returned when an upload is stored and queued."""

    upload_id: str = Field(..., description="Bulk upload ID")
    file_name: str = Field(..., description="Original file name")
    status: str = Field(..., description="Always processing")
    uploaded_at: datetime = Field(..., description="Acceptance time")
    job_id: Optional[str] = Field(None, description="Celery task id of the import job")


class BulkUploadResponse(CamelModel):
    """Audit record of one bulk import."""

    id: str
    uploaded_by: str
    file_name: str
    original_file_name: str
    file_size: int
    mime_type: str
    status: str = Field(..., description="processing, completed, partial or failed")
    total_records: int
    successful_records: int
    error_records: int
    processed_at: Optional[datetime] = None
    processing_time: Optional[int] = Field(None, description="Processing time in milliseconds")
    job_id: Optional[str] = Field(None, description="Celery task id of the import job")
    created_at: datetime
    updated_at: datetime


class RowError(CamelModel):
    """One rejected row; row 0 means the file as a whole."""

    row: int
    field: Optional[str] = None
    message: str


class UploadInfo(CamelModel):
    id: str
    file_name: str
    status: str
    total_records: int
    error_records: int


class UploadErrorsResponse(CamelModel):
    upload_info: UploadInfo
    errors: List[RowError]
