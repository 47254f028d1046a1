"""Database connection and session management."""

from scheduling_api.database.connection import (
    check_connection,
    close_engine,
    create_engine,
    create_task_engine,
    enable_sqlite_foreign_keys,
    get_engine,
)
from scheduling_api.database.models import (
    Appointment,
    AppointmentAttendee,
    AppointmentStatus,
    AttendeeStatus,
    Base,
    BlockedUser,
    BulkUpload,
    BulkUploadError,
    PasswordReset,
    Token,
    UploadStatus,
    User,
    UserRole,
)
from scheduling_api.database.session import (
    close_db,
    get_session,
    get_session_factory,
    init_db,
    session_scope,
)

__all__ = [
    # Models
    "Base",
    "User",
    "UserRole",
    "Token",
    "PasswordReset",
    "Appointment",
    "AppointmentAttendee",
    "AppointmentStatus",
    "AttendeeStatus",
    "BlockedUser",
    "BulkUpload",
    "BulkUploadError",
    "UploadStatus",
    # Connection
    "get_engine",
    "create_engine",
    "create_task_engine",
    "close_engine",
    "check_connection",
    "enable_sqlite_foreign_keys",
    # Session
    "get_session",
    "get_session_factory",
    "session_scope",
    "init_db",
    "close_db",
]
