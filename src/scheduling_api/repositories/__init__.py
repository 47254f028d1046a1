"""Repositories package."""

from scheduling_api.repositories.appointment_repository import AppointmentRepository
from scheduling_api.repositories.base import BaseRepository
from scheduling_api.repositories.blocked_user_repository import BlockedUserRepository
from scheduling_api.repositories.bulk_upload_repository import BulkUploadRepository
from scheduling_api.repositories.report_repository import ReportRepository
from scheduling_api.repositories.token_repository import PasswordResetRepository, TokenRepository
from scheduling_api.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "TokenRepository",
    "PasswordResetRepository",
    "AppointmentRepository",
    "BlockedUserRepository",
    "BulkUploadRepository",
    "ReportRepository",
]
