"""Tests for reporting."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import actor

from scheduling_api.exceptions import AuthorizationError, NotFoundError, ValidationError
from scheduling_api.services.report_service import (
    ReportService,
    get_report_service,
    percentage,
    round_half_up,
    timeframe_start,
)
from scheduling_api.utils.time import months_ago, start_of_week, utcnow


@pytest.fixture
def reports(session: AsyncSession) -> ReportService:
    return get_report_service(session)


class TestHelpers:
    """Tests for rounding and window helpers."""

    def test_round_half_up(self):
        """Test halves round away from zero."""
        assert round_half_up(2.5) == 3
        assert round_half_up(0.125, 2) == 0.13
        assert round_half_up(1.25, 1) == 1.3

    def test_percentage(self):
        """Test percentages are whole numbers and safe on empty input."""
        assert percentage(1, 3) == 33
        assert percentage(2, 3) == 67
        assert percentage(1, 8) == 13
        assert percentage(5, 0) == 0

    def test_timeframe_start(self):
        """Test trailing windows step back by days or calendar months."""
        now = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)
        assert timeframe_start("week", now) == now - timedelta(days=7)
        assert timeframe_start("month", now) == datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)
        assert timeframe_start("quarter", now) == datetime(2023, 12, 31, 12, 0, tzinfo=timezone.utc)
        assert timeframe_start("year", now) == datetime(2023, 3, 31, 12, 0, tzinfo=timezone.utc)
        with pytest.raises(ValidationError, match="Timeframe must be one of"):
            timeframe_start("decade", now)

    def test_start_of_week_is_sunday(self):
        """Test weeks start at Sunday midnight."""
        wednesday = datetime(2024, 5, 15, 15, 30, tzinfo=timezone.utc)
        assert start_of_week(wednesday) == datetime(2024, 5, 12, tzinfo=timezone.utc)

    def test_months_ago_crosses_year(self):
        """Test month arithmetic across a year boundary."""
        value = datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert months_ago(value, 3) == datetime(2023, 10, 15, tzinfo=timezone.utc)


class TestMeetingReports:
    """Tests for meeting statistics."""

    async def test_monthly_buckets(self, reports, make_appointment, manager, developer):
        """Test every month is present and appointments land in their month."""
        appointment = await make_appointment(manager, [developer], duration=45)
        await make_appointment(manager, [developer], duration=30, status="cancelled")
        year = appointment.scheduled_date.year
        month = appointment.scheduled_date.month

        report = await reports.monthly(actor(manager), year)

        assert report["year"] == year
        assert [bucket["month_number"] for bucket in report["monthly_breakdown"]] == list(
            range(1, 13)
        )
        bucket = report["monthly_breakdown"][month - 1]
        assert bucket["total"] == 2
        assert bucket["scheduled"] == 1
        assert bucket["cancelled"] == 1
        assert bucket["total_duration"] == 75
        assert report["summary"]["total_appointments"] == 2
        assert report["summary"]["total_cancelled"] == 1
        assert report["summary"]["average_per_month"] == 0

    async def test_monthly_other_year_empty(self, reports, make_appointment, manager, developer):
        """Test a year without appointments is all zeros."""
        appointment = await make_appointment(manager, [developer])
        report = await reports.monthly(actor(manager), appointment.scheduled_date.year - 5)
        assert report["summary"]["total_appointments"] == 0
        assert all(bucket["total"] == 0 for bucket in report["monthly_breakdown"])

    async def test_developer_sees_assigned_only(
        self, reports, make_appointment, manager, developer, other_developer
    ):
        """Test non-managers only count appointments they attend."""
        await make_appointment(manager, [developer])
        await make_appointment(manager, [other_developer])

        status = await reports.status_summary(actor(developer))
        assert status["overview"]["total"] == 1
        status = await reports.status_summary(actor(manager))
        assert status["overview"]["total"] == 2

    async def test_custom_range(
        self, reports, make_appointment, manager, developer, other_developer
    ):
        """Test range totals and the attendee count."""
        await make_appointment(manager, [developer, other_developer], days_from_now=1, duration=30)
        await make_appointment(manager, [developer], days_from_now=2, duration=45)
        await make_appointment(manager, [developer], days_from_now=20, duration=60)

        now = utcnow()
        report = await reports.custom_range(actor(manager), now, now + timedelta(days=3))

        assert report["date_range"]["total_days"] == 3
        stats = report["statistics"]
        assert stats["total_appointments"] == 2
        assert stats["total_duration"] == 75
        assert stats["avg_duration"] == 38
        assert stats["total_attendees"] == 3

    async def test_custom_range_validation(self, reports, manager):
        """Test both dates are required and must be ordered."""
        now = utcnow()
        with pytest.raises(ValidationError, match="are required"):
            await reports.custom_range(actor(manager), now, None)
        with pytest.raises(ValidationError, match="before end date"):
            await reports.custom_range(actor(manager), now, now)

    async def test_scheduled_count(self, reports, make_appointment, manager, developer):
        """Test only scheduled appointments are counted."""
        await make_appointment(manager, [developer], duration=30)
        await make_appointment(manager, [developer], duration=60)
        await make_appointment(manager, [developer], status="completed")

        report = await reports.scheduled_count(actor(manager))
        assert report["total_scheduled"] == 2
        assert report["avg_duration"] == 45
        assert report["this_week"] <= report["total_scheduled"]

    async def test_attended(self, reports, make_appointment, manager, developer, other_developer):
        """Test the attendance rate is the mean of per-appointment acceptance ratios."""
        await make_appointment(
            manager,
            [developer, other_developer],
            days_from_now=-2,
            duration=30,
            status="completed",
            responses={developer.id: "accepted"},
        )
        await make_appointment(
            manager,
            [developer],
            days_from_now=-3,
            duration=60,
            status="completed",
            responses={developer.id: "accepted"},
        )
        await make_appointment(manager, [developer], days_from_now=-2, status="scheduled")

        report = await reports.attended(actor(manager), "month")

        assert report["timeframe"] == "month"
        assert report["total_attended"] == 2
        assert report["total_duration"] == 90
        assert report["avg_duration"] == 45
        assert report["attendance_rate"] == 75

    async def test_attended_empty(self, reports, manager):
        """Test an empty window reports zeros."""
        report = await reports.attended(actor(manager))
        assert report["total_attended"] == 0
        assert report["attendance_rate"] == 0


class TestUserReports:
    """Tests for per-user activity and status summaries."""

    async def test_user_activity(
        self, reports, make_appointment, manager, developer
    ):
        """Test assigned, response and attendance figures for one user."""
        await make_appointment(
            manager,
            [developer],
            days_from_now=-1,
            duration=90,
            status="completed",
            responses={developer.id: "accepted"},
        )
        await make_appointment(manager, [developer], responses={developer.id: "declined"})
        await make_appointment(manager, [developer])

        report = await reports.user_activity(actor(developer), timeframe="week")

        assert report["user"]["name"] == "Dev One"
        assert report["appointments"] == {
            "created": 0,
            "assigned": 3,
            "accepted": 1,
            "declined": 1,
            "attended": 1,
        }
        assert report["total_hours"] == 1.5
        assert report["response_rate"] == 67
        assert report["attendance_rate"] == 100

    async def test_manager_activity_counts_created(
        self, reports, make_appointment, manager, developer
    ):
        """Test managers see how many appointments they created."""
        await make_appointment(manager, [developer])
        report = await reports.user_activity(actor(manager))
        assert report["appointments"]["created"] == 1
        assert report["appointments"]["assigned"] == 0
        assert report["response_rate"] == 0

    async def test_user_activity_authorization(
        self, reports, manager, developer, other_developer
    ):
        """Test developers cannot read other users' activity but managers can."""
        with pytest.raises(AuthorizationError):
            await reports.user_activity(actor(developer), user_id=other_developer.id)
        report = await reports.user_activity(actor(manager), user_id=developer.id)
        assert report["user"]["id"] == developer.id
        with pytest.raises(NotFoundError):
            await reports.user_activity(actor(manager), user_id="missing")

    async def test_status_summary_rates(
        self, reports, make_appointment, manager, developer, other_developer
    ):
        """Test response, completion and cancellation rates."""
        await make_appointment(
            manager,
            [developer, other_developer],
            status="completed",
            responses={developer.id: "accepted", other_developer.id: "declined"},
        )
        await make_appointment(manager, [developer], status="cancelled")
        await make_appointment(manager, [developer])
        await make_appointment(manager, [developer])

        summary = await reports.status_summary(actor(manager))

        assert summary["overview"] == {
            "total": 4,
            "scheduled": 2,
            "completed": 1,
            "cancelled": 1,
        }
        assert summary["responses"] == {
            "total_attendees": 5,
            "pending": 3,
            "accepted": 1,
            "declined": 1,
        }
        assert summary["rates"] == {
            "response_rate": 40,
            "completion_rate": 25,
            "cancellation_rate": 25,
        }
