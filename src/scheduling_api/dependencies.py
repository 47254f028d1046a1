"""FastAPI dependencies: the request session and per-request services."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.session import get_session
from scheduling_api.services.appointment_query import (
    AppointmentQueryService,
    get_appointment_query_service,
)
from scheduling_api.services.appointment_service import AppointmentService, get_appointment_service
from scheduling_api.services.blocking_service import BlockingService, get_blocking_service
from scheduling_api.services.bulk_import_service import BulkImportService, get_bulk_import_service
from scheduling_api.services.file_storage import FileStorage
from scheduling_api.services.import_queue import ImportQueue
from scheduling_api.services.report_service import ReportService, get_report_service
from scheduling_api.services.token_cache import TokenCache


def get_token_cache(request: Request) -> TokenCache:
    """Process-wide token cache created in the application lifespan."""
    return request.app.state.token_cache


def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.file_storage


def get_import_queue(request: Request) -> ImportQueue:
    return request.app.state.import_queue


def blocking_service(session: AsyncSession = Depends(get_session)) -> BlockingService:
    return get_blocking_service(session)


def appointment_service(session: AsyncSession = Depends(get_session)) -> AppointmentService:
    return get_appointment_service(session)


def appointment_query_service(
    session: AsyncSession = Depends(get_session),
) -> AppointmentQueryService:
    return get_appointment_query_service(session)


def report_service(session: AsyncSession = Depends(get_session)) -> ReportService:
    return get_report_service(session)


def bulk_import_service(
    session: AsyncSession = Depends(get_session),
    storage: FileStorage = Depends(get_file_storage),
) -> BulkImportService:
    return get_bulk_import_service(session, storage)


__all__ = [
    "appointment_query_service",
    "appointment_service",
    "blocking_service",
    "bulk_import_service",
    "get_file_storage",
    "get_import_queue",
    "get_session",
    "get_token_cache",
    "report_service",
]
