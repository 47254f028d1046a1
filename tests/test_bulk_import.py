"""Tests for bulk user import processing and upload history."""

import io
import time

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import FakeImportQueue, actor

from scheduling_api.database.models import BulkUpload, User
from scheduling_api.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from scheduling_api.services.bulk_import_service import (
    BulkImportService,
    get_bulk_import_service,
    is_allowed_file,
    validate_row,
)

CSV_TYPE = "text/csv"
HEADER = "firstName,lastName,email,password,role,department\n"


class FakeUploadFile:
    """Stand-in for Starlette's UploadFile."""

    def __init__(self, filename: str, content: bytes, content_type: str = CSV_TYPE):
        self.filename = filename
        self.content_type = content_type
        self._buffer = io.BytesIO(content)
        self.closed = False

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)

    async def close(self) -> None:
        self.closed = True


def valid_record(**overrides):
    record = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "password": "Password123",
        "role": "Developer",
        "phone": "",
        "department": "",
    }
    record.update(overrides)
    return record


@pytest.fixture
def service(session: AsyncSession, storage) -> BulkImportService:
    return get_bulk_import_service(session, storage)


@pytest.fixture
def queue() -> FakeImportQueue:
    return FakeImportQueue()


async def accept_csv(service, queue, manager, body: str) -> BulkUpload:
    upload = FakeUploadFile("users.csv", (HEADER + body).encode())
    return await service.accept(actor(manager), upload, queue)


class TestValidateRow:
    """Tests for per-row validation."""

    def test_valid(self):
        """Test a complete row has no problems."""
        assert validate_row(valid_record(), 2) is None

    def test_first_missing_field_reported(self):
        """Test required fields are checked in order."""
        problem = validate_row(valid_record(first_name="", email=""), 3)
        assert problem == {"row": 3, "field": "firstName", "message": "firstName is required"}

    def test_invalid_email(self):
        """Test malformed emails are rejected."""
        assert validate_row(valid_record(email="not-an-email"), 2)["field"] == "email"

    def test_malformed_email_rejected_quickly(self):
        """Test a long malformed address is rejected in linear time."""
        started = time.monotonic()
        problem = validate_row(valid_record(email="a" * 40 + "!"), 2)
        assert time.monotonic() - started < 1.0
        assert problem == {"row": 2, "field": "email", "message": "Invalid email format"}

    def test_email_shapes(self):
        """Test dotted and hyphenated addresses pass while broken ones fail."""
        assert validate_row(valid_record(email="ada.lovelace-k@mail.example.com"), 2) is None
        assert validate_row(valid_record(email="ada@@example.com"), 2)["field"] == "email"
        assert validate_row(valid_record(email="ada@example"), 2)["field"] == "email"

    def test_invalid_role(self):
        """Test roles must match exactly."""
        problem = validate_row(valid_record(role="admin"), 2)
        assert problem["message"] == "Role must be Manager or Developer"

    def test_short_password(self):
        """Test the minimum password length."""
        assert validate_row(valid_record(password="short"), 2)["field"] == "password"

    def test_allowed_files(self):
        """Test both extension and MIME type are checked."""
        assert is_allowed_file("users.csv", CSV_TYPE) is True
        assert is_allowed_file("users.CSV", CSV_TYPE) is True
        assert is_allowed_file("users.txt", CSV_TYPE) is False
        assert is_allowed_file("users.csv", "application/pdf") is False


class TestAccept:
    """Tests for accepting uploads."""

    async def test_accept_stores_file_and_queues(self, service, queue, manager, storage):
        """Test an accepted upload is recorded as processing and queued."""
        upload = await accept_csv(
            service, queue, manager, "Ada,Lovelace,ada@example.com,Password123,Developer,\n"
        )

        assert upload.status == "processing"
        assert upload.original_file_name == "users.csv"
        assert upload.uploaded_by == manager.id
        assert storage.exists(upload.file_path)
        assert queue.jobs == [(upload.id, upload.file_path)]
        assert upload.job_id == "job-1"

    async def test_developer_rejected(self, service, queue, developer):
        """Test only managers can upload."""
        upload = FakeUploadFile("users.csv", HEADER.encode())
        with pytest.raises(AuthorizationError, match="Only managers"):
            await service.accept(actor(developer), upload, queue)
        assert upload.closed is True

    async def test_missing_file(self, service, queue, manager):
        """Test a request without a file."""
        with pytest.raises(ValidationError, match="No file uploaded"):
            await service.accept(actor(manager), None, queue)

    async def test_disallowed_type(self, service, queue, manager):
        """Test non-spreadsheet files are refused."""
        upload = FakeUploadFile("users.pdf", b"%PDF", content_type="application/pdf")
        with pytest.raises(ValidationError, match="Only CSV and Excel"):
            await service.accept(actor(manager), upload, queue)

    async def test_queue_unavailable(
        self, service, queue, manager, session: AsyncSession, storage
    ):
        """Test an upload the broker refuses leaves neither a record nor a file behind."""
        await accept_csv(service, queue, manager, "")
        queue.available = False

        with pytest.raises(ConflictError, match="Import queue is unavailable"):
            await accept_csv(service, queue, manager, "")
        uploads = (await session.execute(select(BulkUpload))).scalars().all()
        assert len(uploads) == 1
        assert len(list(storage.directory.iterdir())) == 1


class TestProcess:
    """Tests for processing stored uploads."""

    async def test_all_rows_imported(self, service, queue, manager, session: AsyncSession):
        """Test a clean file completes and creates every user."""
        upload = await accept_csv(
            service,
            queue,
            manager,
            "Ada,Lovelace,ada@example.com,Password123,Developer,Research\n"
            "Alan,Turing,alan@example.com,Password123,Manager,\n",
        )

        assert await service.process(upload.id, upload.file_path) is True

        await session.refresh(upload)
        assert upload.status == "completed"
        assert upload.total_records == 2
        assert upload.successful_records == 2
        assert upload.error_records == 0
        assert upload.processed_at is not None
        ada = (
            await session.execute(select(User).where(User.email == "ada@example.com"))
        ).scalar_one()
        assert ada.department == "Research"
        assert ada.hashed_password != "Password123"

    async def test_partial_with_row_errors(self, service, queue, manager, session: AsyncSession):
        """Test bad rows are recorded with spreadsheet row numbers while good rows import."""
        upload = await accept_csv(
            service,
            queue,
            manager,
            "Ada,Lovelace,ada@example.com,Password123,Developer,\n"
            "Bad,Email,nope,Password123,Developer,\n"
            "Ada,Again,ada@example.com,Password123,Developer,\n"
            f"Maria,Manager,{manager.email},Password123,Manager,\n",
        )

        await service.process(upload.id, upload.file_path)

        await session.refresh(upload)
        assert upload.status == "partial"
        assert upload.successful_records == 1
        assert upload.error_records == 3
        _, errors, total = await service.errors(upload.id, actor(manager), 1, 20)
        assert total == 3
        assert [(error.row, error.field, error.message) for error in errors] == [
            (3, "email", "Invalid email format"),
            (4, "email", "Email already exists"),
            (5, "email", "Email already exists"),
        ]

    async def test_two_invalid_emails_of_five(
        self, service, queue, manager, session: AsyncSession
    ):
        """Test five rows with two bad emails import three users and record two errors."""
        upload = await accept_csv(
            service,
            queue,
            manager,
            "Ada,Lovelace,ada@example.com,Password123,Developer,\n"
            "Bad,One,bad-one,Password123,Developer,\n"
            "Alan,Turing,alan@example.com,Password123,Manager,\n"
            "Bad,Two,bad@two@example.com,Password123,Developer,\n"
            "Grace,Hopper,grace@example.com,Password123,Developer,\n",
        )

        await service.process(upload.id, upload.file_path)

        await session.refresh(upload)
        assert upload.status == "partial"
        assert upload.total_records == 5
        assert upload.successful_records == 3
        assert upload.error_records == 2
        _, errors, _ = await service.errors(upload.id, actor(manager), 1, 20)
        assert [(error.row, error.field) for error in errors] == [(3, "email"), (5, "email")]

    async def test_short_password_row(self, service, queue, manager, session: AsyncSession):
        """Test a short password is reported against its spreadsheet row."""
        upload = await accept_csv(
            service,
            queue,
            manager,
            "Ada,Lovelace,ada@example.com,Password123,Developer,\n"
            "Alan,Turing,alan@example.com,Password123,Developer,\n"
            "Grace,Hopper,grace@example.com,short,Developer,\n",
        )

        await service.process(upload.id, upload.file_path)

        await session.refresh(upload)
        assert upload.status == "partial"
        assert upload.successful_records == 2
        _, errors, _ = await service.errors(upload.id, actor(manager), 1, 20)
        assert len(errors) == 1
        assert errors[0].row == 4
        assert errors[0].field == "password"
        assert errors[0].message == "Password must be at least 8 characters"
        assert (
            await session.execute(select(User).where(User.email == "grace@example.com"))
        ).scalar_one_or_none() is None

    async def test_every_row_failing_is_partial(
        self, service, queue, manager, session: AsyncSession
    ):
        """Test a parsed file where nothing imports still ends partial."""
        upload = await accept_csv(
            service, queue, manager, "Ada,,ada@example.com,Password123,Developer,\n"
        )

        await service.process(upload.id, upload.file_path)

        await session.refresh(upload)
        assert upload.status == "partial"
        assert upload.successful_records == 0

    async def test_unreadable_file_fails(
        self, service, queue, manager, session: AsyncSession, storage
    ):
        """Test a file that cannot be parsed fails the upload."""
        upload = await accept_csv(service, queue, manager, "")
        storage.delete(upload.file_path)

        await service.process(upload.id, upload.file_path)

        await session.refresh(upload)
        assert upload.status == "failed"
        _, errors, _ = await service.errors(upload.id, actor(manager), 1, 20)
        assert errors[0].row == 0
        assert errors[0].message.startswith("File processing failed")

    async def test_terminal_upload_not_rewritten(
        self, service, queue, manager, session: AsyncSession
    ):
        """Test processing an already closed upload changes nothing."""
        upload = await accept_csv(service, queue, manager, "")
        await service.mark_failed(upload.id, "Processing was interrupted")

        assert await service.process(upload.id, upload.file_path) is False
        await session.refresh(upload)
        assert upload.status == "failed"


class TestHistory:
    """Tests for history, download and deletion."""

    async def test_history_visibility(self, service, queue, manager, make_user):
        """Test managers see every upload and filters apply."""
        other_manager = await make_user("Manager")
        await accept_csv(service, queue, manager, "")
        await accept_csv(service, queue, other_manager, "")

        _, total = await service.history(actor(manager), None, 1, 10)
        assert total == 2
        _, total = await service.history(actor(manager), "completed", 1, 10)
        assert total == 0
        with pytest.raises(ValidationError):
            await service.history(actor(manager), "done", 1, 10)

    async def test_developer_history_is_own(self, service, queue, manager, developer):
        """Test non-managers only see their own uploads."""
        await accept_csv(service, queue, manager, "")
        _, total = await service.history(actor(developer), None, 1, 10)
        assert total == 0

    async def test_developer_cannot_view_others(self, service, queue, manager, developer):
        """Test non-managers cannot open another user's upload."""
        upload = await accept_csv(service, queue, manager, "")
        with pytest.raises(AuthorizationError, match="your own uploads"):
            await service.get(upload.id, actor(developer))

    async def test_download(self, service, queue, manager, storage):
        """Test the stored path and original name are returned while the file exists."""
        upload = await accept_csv(service, queue, manager, "")
        path, name = await service.download(upload.id, actor(manager))
        assert path == upload.file_path
        assert name == "users.csv"

        storage.delete(upload.file_path)
        with pytest.raises(NotFoundError, match="File not found on server"):
            await service.download(upload.id, actor(manager))

    async def test_delete(self, service, queue, manager, storage):
        """Test deleting removes the record and the stored file."""
        upload = await accept_csv(service, queue, manager, "Ada,,bad,short,Nobody,\n")
        await service.process(upload.id, upload.file_path)

        await service.delete(upload.id, actor(manager))

        assert not storage.exists(upload.file_path)
        with pytest.raises(NotFoundError, match="Upload not found"):
            await service.get(upload.id, actor(manager))

