"""Bulk user upload endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import FileResponse

from scheduling_api.auth.dependencies import get_current_user
from scheduling_api.dependencies import bulk_import_service, get_import_queue
from scheduling_api.models.bulk_upload import (
    BulkUploadResponse,
    RowError,
    UploadAccepted,
    UploadErrorsResponse,
    UploadInfo,
)
from scheduling_api.models.common import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ApiResponse,
    PaginatedResponse,
    Pagination,
)
from scheduling_api.services.auth_service import CurrentUser
from scheduling_api.services.bulk_import_service import BulkImportService
from scheduling_api.services.import_queue import ImportQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bulk-upload", tags=["bulk-upload"])

DEFAULT_ERRORS_PAGE_SIZE = 20


@router.post(
    "/users",
    response_model=ApiResponse[UploadAccepted],
    status_code=status.HTTP_201_CREATED,
    summary="Upload users from CSV or Excel",
)
async def upload_users(
    file: Optional[UploadFile] = File(None, description="CSV, XLSX or XLS sheet of users"),
    current_user: CurrentUser = Depends(get_current_user),
    service: BulkImportService = Depends(bulk_import_service),
    queue: ImportQueue = Depends(get_import_queue),
):
    """
    Accept a sheet of users and import it in the background.

    The response returns as soon as the file is stored; poll the upload record
    for the final status and per-row errors.
    """
    upload = await service.accept(current_user, file, queue)
    return ApiResponse(
        message="File uploaded successfully. Processing started.",
        data=UploadAccepted(
            upload_id=upload.id,
            file_name=upload.original_file_name,
            status=upload.status,
            uploaded_at=upload.created_at,
            job_id=upload.job_id,
        ),
    )


@router.get(
    "/history",
    response_model=PaginatedResponse[List[BulkUploadResponse]],
    summary="Upload history",
)
async def upload_history(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    status_: Optional[str] = Query(None, alias="status", description="Filter by upload status"),
    current_user: CurrentUser = Depends(get_current_user),
    service: BulkImportService = Depends(bulk_import_service),
):
    uploads, total = await service.history(current_user, status_, page, limit)
    return PaginatedResponse(
        message="Upload history retrieved successfully",
        data=[BulkUploadResponse.model_validate(upload) for upload in uploads],
        pagination=Pagination.build(page, limit, total),
    )


@router.get(
    "/{upload_id}",
    response_model=ApiResponse[BulkUploadResponse],
    summary="Upload details",
)
async def get_upload(
    upload_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: BulkImportService = Depends(bulk_import_service),
):
    upload = await service.get(upload_id, current_user)
    return ApiResponse(
        message="Upload details retrieved successfully",
        data=BulkUploadResponse.model_validate(upload),
    )


@router.get("/{upload_id}/download", summary="Download the original file")
async def download_upload(
    upload_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: BulkImportService = Depends(bulk_import_service),
) -> FileResponse:
    path, original_name = await service.download(upload_id, current_user)
    return FileResponse(path, filename=original_name)


@router.get(
    "/{upload_id}/errors",
    response_model=PaginatedResponse[UploadErrorsResponse],
    summary="Row errors of an upload",
)
async def upload_errors(
    upload_id: str,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(DEFAULT_ERRORS_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    current_user: CurrentUser = Depends(get_current_user),
    service: BulkImportService = Depends(bulk_import_service),
):
    upload, errors, total = await service.errors(upload_id, current_user, page, limit)
    return PaginatedResponse(
        message="Upload errors retrieved successfully",
        data=UploadErrorsResponse(
            upload_info=UploadInfo.model_validate(upload),
            errors=[RowError.model_validate(error) for error in errors],
        ),
        pagination=Pagination.build(page, limit, total),
    )


@router.delete("/{upload_id}", response_model=ApiResponse[None], summary="Delete upload")
async def delete_upload(
    upload_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: BulkImportService = Depends(bulk_import_service),
):
    """Delete the stored file and the upload record with its row errors."""
    await service.delete(upload_id, current_user)
    return ApiResponse(message="Upload deleted successfully")
