"""Bulk user import: upload acceptance, row processing and upload history."""

import asyncio
import logging
import os
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.auth.passwords import hash_password
from scheduling_api.config import get_settings
from scheduling_api.database.models import BulkUpload, BulkUploadError, UploadStatus, UserRole
from scheduling_api.exceptions import (
    APIException,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from scheduling_api.repositories.bulk_upload_repository import BulkUploadRepository
from scheduling_api.repositories.user_repository import UserRepository
from scheduling_api.services.auth_service import CurrentUser
from scheduling_api.services.file_parser import FileParseError, parse_user_file
from scheduling_api.services.file_storage import FileStorage
from scheduling_api.utils.logging import bind_log_context
from scheduling_api.utils.time import utcnow

if TYPE_CHECKING:
    from scheduling_api.services.import_queue import ImportQueue

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

# Display name and parsed key, checked in this order
REQUIRED_FIELDS = (
    ("firstName", "first_name"),
    ("lastName", "last_name"),
    ("email", "email"),
    ("password", "password"),
    ("role", "role"),
)
VALID_ROLES = tuple(role.value for role in UserRole)


def row_error(row: int, field: Optional[str], message: str) -> Dict[str, Any]:
    return {"row": row, "field": field, "message": message}


def is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_row(record: Dict[str, str], row: int) -> Optional[Dict[str, Any]]:
    """First problem with a parsed row, or None when it can be imported."""
    for display_name, key in REQUIRED_FIELDS:
        if not (record.get(key) or "").strip():
            return row_error(row, display_name, f"{display_name} is required")

    if not is_valid_email(record["email"].strip()):
        return row_error(row, "email", "Invalid email format")
    if record["role"].strip() not in VALID_ROLES:
        return row_error(row, "role", "Role must be Manager or Developer")
    if len(record["password"]) < MIN_PASSWORD_LENGTH:
        return row_error(
            row, "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    return None


def is_allowed_file(file_name: str, content_type: Optional[str]) -> bool:
    """Both the extension and the declared MIME type must be on the allow lists."""
    settings = get_settings().upload
    extension = os.path.splitext(file_name)[1].lower()
    return extension in settings.allowed_extensions and content_type in settings.allowed_mime_types


class BulkImportService:
    """Service for accepting, processing and reviewing bulk user uploads."""

    def __init__(self, session: AsyncSession, storage: FileStorage):
        """
        Initialize bulk import service.

        Args:
            session: Database session
            storage: Where uploaded files are kept
        """
        self.session = session
        self.storage = storage
        self.uploads = BulkUploadRepository(session)
        self.users = UserRepository(session)

    async def accept(
        self, actor: CurrentUser, upload: Any, queue: "ImportQueue"
    ) -> BulkUpload:
        """
        Store an uploaded sheet, record it as processing and queue its import.

        Args:
            actor: Uploading user
            upload: Starlette ``UploadFile`` (or None when the field was missing)
            queue: Broker handle the import job is sent to

        Raises:
            AuthorizationError: the actor is not a manager
            ValidationError: missing, disallowed or oversized file
            ConflictError: the import job could not be queued
        """
        if not actor.is_manager:
            if upload is not None:
                await upload.close()
            raise AuthorizationError("Only managers can upload bulk users")
        if upload is None or not upload.filename:
            raise ValidationError("No file uploaded")
        if not is_allowed_file(upload.filename, upload.content_type):
            await upload.close()
            raise ValidationError("Only CSV and Excel files are allowed")

        try:
            stored = await self.storage.save(upload, actor.user_id)
        finally:
            await upload.close()

        try:
            record = await self.uploads.create(
                uploaded_by=actor.user_id,
                file_name=stored.file_name,
                original_file_name=upload.filename,
                file_size=stored.size,
                mime_type=upload.content_type,
                file_path=stored.path,
                status=UploadStatus.PROCESSING.value,
            )
            await self.session.commit()
        except APIException:
            self.storage.delete(stored.path)
            raise

        try:
            record.job_id = queue.enqueue(record.id, stored.path)
        except ConflictError:
            await self.uploads.delete_upload(record)
            await self.session.commit()
            self.storage.delete(stored.path)
            raise
        await self.session.commit()
        logger.info(
            f"Accepted bulk upload {record.id} from {actor.user_id}: "
            f"{upload.filename} ({stored.size} bytes)"
        )
        return record

    async def _import_row(self, record: Dict[str, str], row: int) -> Optional[Dict[str, Any]]:
        problem = validate_row(record, row)
        if problem is not None:
            return problem
        if await self.users.email_exists(record["email"]):
            return row_error(row, "email", "Email already exists")
        try:
            hashed = await asyncio.to_thread(hash_password, record["password"])
            await self.users.create_user(
                first_name=record["first_name"],
                last_name=record["last_name"],
                email=record["email"],
                hashed_password=hashed,
                role=record["role"].strip(),
                phone=record.get("phone") or None,
                department=record.get("department") or None,
            )
            await self.session.commit()
        except APIException as e:
            await self.session.rollback()
            return row_error(row, "general", e.message)
        return None

    async def process(self, upload_id: str, file_path: str) -> bool:
        """
        Import every row of a stored file and close out the upload record.

        Each user is committed on its own so one bad row never undoes the
        others. Returns False if the upload was already terminal.
        """
        started = time.monotonic()
        errors: List[Dict[str, Any]] = []
        successful = 0
        total = 0
        try:
            records = await asyncio.to_thread(parse_user_file, file_path)
        except (FileParseError, OSError) as e:
            logger.warning(f"Bulk upload {upload_id} could not be parsed: {e}")
            status = UploadStatus.FAILED
            errors.append(row_error(0, "general", f"File processing failed: {e}"))
        else:
            total = len(records)
            for index, record in enumerate(records):
                problem = await self._import_row(record, index + 2)
                if problem is None:
                    successful += 1
                else:
                    errors.append(problem)
            status = UploadStatus.PARTIAL if errors else UploadStatus.COMPLETED

        completed = await self.uploads.complete(
            upload_id,
            status=status,
            total_records=total,
            successful_records=successful,
            errors=errors,
            processed_at=utcnow(),
            processing_time=int((time.monotonic() - started) * 1000),
        )
        await self.session.commit()
        if completed:
            logger.info(
                f"Bulk upload {upload_id} {status.value}: "
                f"{successful}/{total} rows imported, {len(errors)} errors"
            )
        else:
            logger.warning(f"Bulk upload {upload_id} was already closed; results discarded")
        return completed

    async def mark_failed(self, upload_id: str, message: str) -> bool:
        """Close a processing upload as failed with a single file-level error."""
        completed = await self.uploads.complete(
            upload_id,
            status=UploadStatus.FAILED,
            total_records=0,
            successful_records=0,
            errors=[row_error(0, "general", message)],
            processed_at=utcnow(),
            processing_time=0,
        )
        await self.session.commit()
        if completed:
            logger.warning(f"Bulk upload {upload_id} marked failed: {message}")
        return completed

    async def fail_stuck(self, cutoff: datetime) -> int:
        """Fail every upload still processing that was accepted before ``cutoff``."""
        count = 0
        for upload in await self.uploads.stuck_before(cutoff):
            if await self.mark_failed(upload.id, "Processing was interrupted"):
                count += 1
        return count

    async def history(
        self, actor: CurrentUser, status: Optional[str], page: int, limit: int
    ) -> Tuple[List[BulkUpload], int]:
        """Managers see every upload, everyone else only their own."""
        if status and status not in {value.value for value in UploadStatus}:
            raise ValidationError(
                "Status must be one of: processing, completed, failed, partial"
            )
        uploaded_by = None if actor.is_manager else actor.user_id
        return await self.uploads.history(uploaded_by, status, page, limit)

    async def _load(self, upload_id: str, actor: CurrentUser, action: str) -> BulkUpload:
        bind_log_context(upload_id=upload_id)
        upload = await self.uploads.get_by_id(upload_id)
        if upload is None:
            raise NotFoundError("Upload", message="Upload not found")
        if not actor.is_manager and upload.uploaded_by != actor.user_id:
            raise AuthorizationError(f"You can only {action} your own uploads")
        return upload

    async def get(self, upload_id: str, actor: CurrentUser) -> BulkUpload:
        return await self._load(upload_id, actor, "view")

    async def download(self, upload_id: str, actor: CurrentUser) -> Tuple[str, str]:
        """Path and original name of the stored file."""
        upload = await self._load(upload_id, actor, "download")
        if not self.storage.exists(upload.file_path):
            raise NotFoundError("File", message="File not found on server")
        return upload.file_path, upload.original_file_name

    async def errors(
        self, upload_id: str, actor: CurrentUser, page: int, limit: int
    ) -> Tuple[BulkUpload, List[BulkUploadError], int]:
        """The upload and one page of its row errors."""
        upload = await self._load(upload_id, actor, "view")
        errors, total = await self.uploads.errors_page(upload_id, page, limit)
        return upload, errors, total

    async def delete(self, upload_id: str, actor: CurrentUser) -> None:
        """Remove the stored file, then the record and its row errors."""
        upload = await self._load(upload_id, actor, "delete")
        self.storage.delete(upload.file_path)
        await self.uploads.delete_upload(upload)
        logger.info(f"Bulk upload {upload_id} deleted by {actor.user_id}")


def get_bulk_import_service(session: AsyncSession, storage: FileStorage) -> BulkImportService:
    """Get a bulk import service instance."""
    return BulkImportService(session, storage)
