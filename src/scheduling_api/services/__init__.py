"""Services package."""

from scheduling_api.services.appointment_query import (
    AppointmentFilter,
    AppointmentQueryService,
    get_appointment_query_service,
)
from scheduling_api.services.appointment_service import AppointmentService, get_appointment_service
from scheduling_api.services.auth_service import AuthService, CurrentUser, get_auth_service
from scheduling_api.services.blocking_service import BlockingService, get_blocking_service
from scheduling_api.services.bulk_import_service import BulkImportService, get_bulk_import_service
from scheduling_api.services.file_storage import FileStorage
from scheduling_api.services.import_queue import ImportQueue
from scheduling_api.services.report_service import ReportService, get_report_service
from scheduling_api.services.token_cache import TokenCache

__all__ = [
    "AppointmentFilter",
    "AppointmentQueryService",
    "AppointmentService",
    "AuthService",
    "BlockingService",
    "BulkImportService",
    "CurrentUser",
    "FileStorage",
    "ImportQueue",
    "ReportService",
    "TokenCache",
    "get_appointment_query_service",
    "get_appointment_service",
    "get_auth_service",
    "get_blocking_service",
    "get_bulk_import_service",
    "get_report_service",
]
