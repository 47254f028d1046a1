"""Pydantic models for reporting endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import Field

from scheduling_api.models.common import CamelModel, UserSummary


class MonthBucket(CamelModel):
    month: str = Field(..., description="Short month name")
    month_number: int = Field(..., description="1-12")
    total: int
    scheduled: int
    completed: int
    cancelled: int
    total_duration: int = Field(..., description="Summed minutes")


class MonthlySummary(CamelModel):
    total_appointments: int
    total_completed: int
    total_cancelled: int
    average_per_month: int


class MonthlyReport(CamelModel):
    """Twelve month buckets for one year."""

    year: int
    monthly_breakdown: List[MonthBucket]
    summary: MonthlySummary


class DateRange(CamelModel):
    start_date: datetime
    end_date: datetime
    total_days: int


class RangeStatistics(CamelModel):
    total_appointments: int
    scheduled: int
    completed: int
    cancelled: int
    total_duration: int
    avg_duration: int
    total_attendees: int


class CustomRangeReport(CamelModel):
    date_range: DateRange
    statistics: RangeStatistics


class ScheduledReport(CamelModel):
    total_scheduled: int
    this_week: int = Field(..., description="Scheduled from Sunday 00:00 UTC")
    this_month: int = Field(..., description="Scheduled from the 1st of the month")
    avg_duration: int


class AttendedReport(CamelModel):
    timeframe: str
    start_date: datetime
    total_attended: int
    total_duration: int
    avg_duration: int
    attendance_rate: int = Field(..., description="Mean accepted share, percent")


class ActivityCounts(CamelModel):
    created: int
    assigned: int
    accepted: int
    declined: int
    attended: int


class ActivityReport(CamelModel):
    """Activity of one user over a trailing timeframe."""

    user: UserSummary
    timeframe: str
    appointments: ActivityCounts
    total_hours: float = Field(..., description="Hours in attended meetings, one decimal")
    response_rate: int
    attendance_rate: int


class StatusOverview(CamelModel):
    total: int
    scheduled: int
    completed: int
    cancelled: int


class ResponseTotals(CamelModel):
    total_attendees: int
    pending: int
    accepted: int
    declined: int


class Rates(CamelModel):
    response_rate: int
    completion_rate: int
    cancellation_rate: int


class StatusSummaryReport(CamelModel):
    overview: StatusOverview
    responses: ResponseTotals
    rates: Rates
