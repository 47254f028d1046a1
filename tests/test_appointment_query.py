"""Tests for appointment filtering, listings and export."""

import csv
import io
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import actor

from scheduling_api.exceptions import (
    AuthorizationError,
    NotFoundError,
    NotImplementedFeatureError,
    ValidationError,
)
from scheduling_api.services.appointment_query import (
    CSV_HEADERS,
    AppointmentFilter,
    AppointmentQueryService,
    Scope,
    build_conditions,
    get_appointment_query_service,
    parse_attendee_status,
    parse_statuses,
    resolve_scope,
)
from scheduling_api.utils.time import utcnow


@pytest.fixture
def queries(session: AsyncSession) -> AppointmentQueryService:
    return get_appointment_query_service(session)


@pytest.fixture
async def second_manager(make_user):
    return await make_user("Manager", first_name="Mark", last_name="Boss")


class TestParsing:
    """Tests for filter parsing helpers."""

    def test_parse_statuses(self):
        """Test comma-separated statuses are split and trimmed."""
        assert parse_statuses("scheduled, completed") == ["scheduled", "completed"]
        assert parse_statuses(None) == []

    def test_parse_statuses_unknown(self):
        """Test unknown statuses are rejected."""
        with pytest.raises(ValidationError, match="archived"):
            parse_statuses("scheduled,archived")

    def test_parse_attendee_status(self):
        """Test attendee statuses are checked against the known values."""
        assert parse_attendee_status("accepted") == "accepted"
        with pytest.raises(ValidationError):
            parse_attendee_status("maybe")

    def test_resolve_scope(self, manager, developer):
        """Test developers are always restricted to assigned appointments."""
        assert resolve_scope(actor(developer), "all") == Scope.ASSIGNED
        assert resolve_scope(actor(manager)) == Scope.OWN
        assert resolve_scope(actor(manager), None, default=Scope.ALL) == Scope.ALL
        assert resolve_scope(actor(manager), "created") == Scope.CREATED
        with pytest.raises(ValidationError, match="Type must be one of"):
            resolve_scope(actor(manager), "everything")

    def test_scoped_filter_needs_subject(self):
        """Test a scoped filter without a subject is a programming error."""
        with pytest.raises(ValueError):
            build_conditions(AppointmentFilter(scope=Scope.CREATED))


class TestListings:
    """Tests for role-scoped listings."""

    async def test_developer_sees_assigned_only(
        self, queries, make_appointment, manager, developer, other_developer
    ):
        """Test developers only see appointments they attend."""
        mine = await make_appointment(manager, [developer], title="Mine")
        await make_appointment(manager, [other_developer], title="Theirs")

        items, total = await queries.list_for_actor(
            actor(developer), AppointmentFilter(), 1, 10, view_type="all"
        )
        assert total == 1
        assert items[0].id == mine.id

    async def test_manager_default_is_own(
        self, queries, make_appointment, manager, second_manager, developer
    ):
        """Test managers list their own appointments by default and everything with type=all."""
        await make_appointment(manager, [developer], title="Mine")
        await make_appointment(second_manager, [developer], title="Other team")

        _, own = await queries.list_for_actor(actor(manager), AppointmentFilter(), 1, 10)
        _, everything = await queries.list_for_actor(
            actor(manager), AppointmentFilter(), 1, 10, view_type="all"
        )
        assert own == 1
        assert everything == 2

    async def test_latest_scheduled_first(self, queries, make_appointment, manager, developer):
        """Test listings are ordered by scheduled date descending."""
        early = await make_appointment(manager, [developer], title="Early", days_from_now=1)
        late = await make_appointment(manager, [developer], title="Late", days_from_now=5)

        items, _ = await queries.list_for_actor(actor(manager), AppointmentFilter(), 1, 10)
        assert [item.id for item in items] == [late.id, early.id]

    async def test_my_created_for_developer_is_empty(self, queries, developer):
        """Test developers have no created appointments."""
        assert await queries.my_created(actor(developer), AppointmentFilter(), 1, 10) == ([], 0)

    async def test_my_assigned_by_own_response(
        self, queries, make_appointment, manager, developer, other_developer
    ):
        """Test the response-status filter applies to the caller's own entry."""
        accepted = await make_appointment(
            manager,
            [developer, other_developer],
            title="Accepted",
            responses={developer.id: "accepted"},
        )
        await make_appointment(
            manager,
            [developer, other_developer],
            title="Pending for me",
            responses={other_developer.id: "accepted"},
        )

        items, total = await queries.my_assigned(
            actor(developer), AppointmentFilter(attendee_status="accepted"), 1, 10
        )
        assert total == 1
        assert items[0].id == accepted.id

    async def test_user_views(self, queries, make_appointment, manager, developer, other_developer):
        """Test per-user views are open to managers and to the user themself."""
        await make_appointment(manager, [developer])

        _, total = await queries.user_assigned(
            actor(manager), developer.id, AppointmentFilter(), 1, 10
        )
        assert total == 1
        _, total = await queries.user_assigned(
            actor(developer), developer.id, AppointmentFilter(), 1, 10
        )
        assert total == 1
        _, total = await queries.user_created(
            actor(manager), manager.id, AppointmentFilter(), 1, 10
        )
        assert total == 1

        with pytest.raises(AuthorizationError):
            await queries.user_assigned(
                actor(other_developer), developer.id, AppointmentFilter(), 1, 10
            )
        with pytest.raises(NotFoundError, match="User not found"):
            await queries.user_created(actor(manager), "missing", AppointmentFilter(), 1, 10)


class TestFilter:
    """Tests for the multi-criteria filter and its summary."""

    async def test_criteria_combine(self, queries, make_appointment, manager, developer):
        """Test date, duration and status criteria are combined with AND."""
        match = await make_appointment(manager, [developer], days_from_now=2, duration=45)
        await make_appointment(manager, [developer], days_from_now=2, duration=15)
        await make_appointment(manager, [developer], days_from_now=10, duration=45)
        await make_appointment(
            manager, [developer], days_from_now=2, duration=45, status="cancelled"
        )

        criteria = AppointmentFilter(
            start_date=utcnow(),
            end_date=utcnow() + timedelta(days=3),
            statuses=["scheduled"],
            min_duration=30,
            max_duration=60,
        )
        items, total, summary = await queries.filter(actor(manager), criteria, 1, 10)

        assert total == 1
        assert items[0].id == match.id
        assert summary["total_appointments"] == 1
        assert summary["status_breakdown"] == {"scheduled": 1}

    async def test_summary_covers_whole_match(self, queries, make_appointment, manager, developer):
        """Test the summary is computed over every match, not just the page."""
        await make_appointment(manager, [developer], duration=30)
        await make_appointment(manager, [developer], duration=45)
        await make_appointment(manager, [developer], duration=60, status="completed")

        items, total, summary = await queries.filter(actor(manager), AppointmentFilter(), 1, 1)

        assert len(items) == 1
        assert total == 3
        assert summary["status_breakdown"] == {"scheduled": 2, "completed": 1}
        assert summary["avg_duration"] == 45

    async def test_average_rounds_half_up(self, queries, make_appointment, manager, developer):
        """Test the average duration is rounded to the nearest minute."""
        await make_appointment(manager, [developer], duration=30)
        await make_appointment(manager, [developer], duration=45)

        _, _, summary = await queries.filter(actor(manager), AppointmentFilter(), 1, 10)
        assert summary["avg_duration"] == 38

    async def test_empty_summary(self, queries, manager):
        """Test a filter without matches summarizes to zeros."""
        _, total, summary = await queries.filter(actor(manager), AppointmentFilter(), 1, 10)
        assert total == 0
        assert summary == {"total_appointments": 0, "status_breakdown": {}, "avg_duration": 0}

    async def test_attendee_filters(
        self, queries, make_appointment, manager, developer, other_developer
    ):
        """Test filtering by attendee and by any attendee's response."""
        with_dev = await make_appointment(
            manager, [developer], responses={developer.id: "declined"}
        )
        await make_appointment(manager, [other_developer])

        _, total, _ = await queries.filter(
            actor(manager), AppointmentFilter(attendee_id=developer.id), 1, 10
        )
        assert total == 1
        items, _, _ = await queries.filter(
            actor(manager), AppointmentFilter(attendee_status="declined"), 1, 10
        )
        assert [item.id for item in items] == [with_dev.id]


class TestExport:
    """Tests for CSV and JSON export."""

    async def test_csv_export(self, queries, make_appointment, manager, developer, other_developer):
        """Test CSV export writes the header and one row per appointment."""
        appointment = await make_appointment(
            manager, [developer, other_developer], responses={developer.id: "accepted"}
        )

        result = await queries.export(actor(manager), AppointmentFilter(), "CSV")

        assert result.format == "csv"
        assert result.filename.startswith("appointments_export_")
        assert result.filename.endswith(".csv")
        rows = list(csv.reader(io.StringIO(result.content)))
        assert rows[0] == CSV_HEADERS
        assert len(rows) == 2
        row = dict(zip(CSV_HEADERS, rows[1]))
        assert row["ID"] == appointment.id
        assert row["Manager Name"] == "Maria Manager"
        assert row["Attendees"] == "Dev One (accepted); Dana Two (pending)"
        assert row["Accepted Count"] == "1"
        assert row["Pending Count"] == "1"

    async def test_empty_csv_has_header_only(self, queries, manager):
        """Test an empty export is still a valid CSV document."""
        result = await queries.export(actor(manager), AppointmentFilter(), "csv")
        assert result.total_records == 0
        assert list(csv.reader(io.StringIO(result.content))) == [CSV_HEADERS]

    async def test_json_export(self, queries, make_appointment, manager, developer):
        """Test JSON export returns the records and echoes the filters."""
        await make_appointment(manager, [developer], duration=60)

        result = await queries.export(
            actor(manager), AppointmentFilter(min_duration=30), "json"
        )
        assert result.content is None
        assert result.total_records == 1
        assert result.filters["minDuration"] == 30
        assert result.filters["scope"] == "all"

    async def test_developer_export_is_scoped(
        self, queries, make_appointment, manager, developer, other_developer
    ):
        """Test developers only export their own assignments."""
        await make_appointment(manager, [developer])
        await make_appointment(manager, [other_developer])

        result = await queries.export(actor(developer), AppointmentFilter(), "json")
        assert result.total_records == 1

    async def test_invalid_format(self, queries, manager):
        """Test unknown formats are rejected."""
        with pytest.raises(ValidationError, match="Invalid export format"):
            await queries.export(actor(manager), AppointmentFilter(), "pdf")

    async def test_excel_not_implemented(self, queries, manager):
        """Test Excel export reports that it is unavailable."""
        with pytest.raises(NotImplementedFeatureError):
            await queries.export(actor(manager), AppointmentFilter(), "excel")
