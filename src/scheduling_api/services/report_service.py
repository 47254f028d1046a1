"""Read-only reporting over appointments and attendee responses."""

import logging
import math
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import (
    Appointment,
    AppointmentAttendee,
    AppointmentStatus,
    AttendeeStatus,
)
from scheduling_api.exceptions import AuthorizationError, NotFoundError, ValidationError
from scheduling_api.repositories.report_repository import ReportRepository
from scheduling_api.repositories.user_repository import UserRepository
from scheduling_api.services.auth_service import CurrentUser
from scheduling_api.utils.time import ensure_utc, months_ago, start_of_month, start_of_week, utcnow

logger = logging.getLogger(__name__)

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
TIMEFRAMES = ("week", "month", "quarter", "year")


def round_half_up(value: float, digits: int = 0) -> float:
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def percentage(part: float, whole: float) -> int:
    """``part / whole`` as a whole-number percent; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return int(round_half_up(part / whole * 100))


def timeframe_start(timeframe: str, now: Optional[datetime] = None) -> datetime:
    """Start of a trailing reporting window ending at ``now``."""
    now = now or utcnow()
    if timeframe == "week":
        return now - timedelta(days=7)
    if timeframe == "month":
        return months_ago(now, 1)
    if timeframe == "quarter":
        return months_ago(now, 3)
    if timeframe == "year":
        return months_ago(now, 12)
    raise ValidationError(f"Timeframe must be one of: {', '.join(TIMEFRAMES)}")


class ReportService:
    """Aggregated meeting statistics scoped by the caller's role."""

    def __init__(self, session: AsyncSession):
        """
        Initialize report service.

        Args:
            session: Database session
        """
        self.reports = ReportRepository(session)
        self.users = UserRepository(session)

    @staticmethod
    def visibility(actor: CurrentUser) -> List[Any]:
        """Managers see every appointment, everyone else only those they attend."""
        if actor.is_manager:
            return []
        return [Appointment.attendees.any(AppointmentAttendee.user_id == actor.user_id)]

    async def monthly(self, actor: CurrentUser, year: Optional[int] = None) -> Dict[str, Any]:
        """Twelve zero-filled month buckets for ``year`` plus yearly totals."""
        year = year or utcnow().year
        if year < 1 or year > 9998:
            raise ValidationError("Year is out of range")
        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
        conditions = self.visibility(actor) + [
            Appointment.scheduled_date >= start,
            Appointment.scheduled_date < end,
        ]
        found = await self.reports.monthly_breakdown(conditions)

        buckets = []
        for number, name in enumerate(MONTH_NAMES, start=1):
            data = found.get(number, {})
            buckets.append(
                {
                    "month": name,
                    "month_number": number,
                    "total": data.get("total", 0),
                    "scheduled": data.get("scheduled", 0),
                    "completed": data.get("completed", 0),
                    "cancelled": data.get("cancelled", 0),
                    "total_duration": data.get("total_duration", 0),
                }
            )
        total = sum(bucket["total"] for bucket in buckets)
        return {
            "year": year,
            "monthly_breakdown": buckets,
            "summary": {
                "total_appointments": total,
                "total_completed": sum(bucket["completed"] for bucket in buckets),
                "total_cancelled": sum(bucket["cancelled"] for bucket in buckets),
                "average_per_month": int(round_half_up(total / 12)),
            },
        }

    async def custom_range(
        self,
        actor: CurrentUser,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> Dict[str, Any]:
        """Totals for appointments scheduled within ``[start_date, end_date]``."""
        if start_date is None or end_date is None:
            raise ValidationError("Start date and end date are required")
        start_date, end_date = ensure_utc(start_date), ensure_utc(end_date)
        if start_date >= end_date:
            raise ValidationError("Start date must be before end date")

        conditions = self.visibility(actor) + [
            Appointment.scheduled_date >= start_date,
            Appointment.scheduled_date <= end_date,
        ]
        totals = await self.reports.totals(conditions)
        attendees = await self.reports.attendee_totals(conditions)
        return {
            "date_range": {
                "start_date": start_date,
                "end_date": end_date,
                "total_days": math.ceil((end_date - start_date).total_seconds() / 86400),
            },
            "statistics": {
                "total_appointments": totals["total"],
                "scheduled": totals["scheduled"],
                "completed": totals["completed"],
                "cancelled": totals["cancelled"],
                "total_duration": totals["total_duration"],
                "avg_duration": int(round_half_up(totals["avg_duration"])),
                "total_attendees": attendees["total"],
            },
        }

    async def scheduled_count(self, actor: CurrentUser) -> Dict[str, Any]:
        """Scheduled appointments overall and from the start of this week and month."""
        now = utcnow()
        conditions = self.visibility(actor) + [
            Appointment.status == AppointmentStatus.SCHEDULED.value
        ]
        totals = await self.reports.totals(conditions)
        this_week = await self.reports.count(
            conditions + [Appointment.scheduled_date >= start_of_week(now)]
        )
        this_month = await self.reports.count(
            conditions + [Appointment.scheduled_date >= start_of_month(now)]
        )
        return {
            "total_scheduled": totals["total"],
            "this_week": this_week,
            "this_month": this_month,
            "avg_duration": int(round_half_up(totals["avg_duration"])),
        }

    async def attended(self, actor: CurrentUser, timeframe: Optional[str] = None) -> Dict[str, Any]:
        """Completed appointments in a trailing window and their mean acceptance ratio."""
        timeframe = timeframe or "month"
        since = timeframe_start(timeframe)
        conditions = self.visibility(actor) + [
            Appointment.status == AppointmentStatus.COMPLETED.value,
            Appointment.scheduled_date >= since,
        ]
        rows = await self.reports.attendance_per_appointment(conditions)
        total_duration = sum(duration for duration, _, _ in rows)
        ratios = [accepted / attendees for _, attendees, accepted in rows if attendees]
        return {
            "timeframe": timeframe,
            "start_date": since,
            "total_attended": len(rows),
            "total_duration": total_duration,
            "avg_duration": int(round_half_up(total_duration / len(rows))) if rows else 0,
            "attendance_rate": percentage(sum(ratios), len(ratios)),
        }

    async def user_activity(
        self, actor: CurrentUser, user_id: Optional[str] = None, timeframe: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Activity of one user over a trailing window.

        Non-managers may only request their own report.
        """
        if user_id and not actor.is_manager and user_id != actor.user_id:
            raise AuthorizationError("You can only view your own activity report")
        user_id = user_id or actor.user_id
        timeframe = timeframe or "month"
        since = timeframe_start(timeframe)

        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", message="User not found")

        created = await self.reports.count(
            [Appointment.manager_id == user_id, Appointment.created_at >= since]
        )
        entries = await self.reports.assigned_entries(user_id, since)
        accepted = sum(1 for entry, _, _ in entries if entry == AttendeeStatus.ACCEPTED.value)
        declined = sum(1 for entry, _, _ in entries if entry == AttendeeStatus.DECLINED.value)
        attended_minutes = [
            duration
            for entry, status, duration in entries
            if entry == AttendeeStatus.ACCEPTED.value
            and status == AppointmentStatus.COMPLETED.value
        ]
        return {
            "user": {
                "id": user.id,
                "name": user.full_name,
                "email": user.email,
                "role": user.role,
                "department": user.department,
            },
            "timeframe": timeframe,
            "appointments": {
                "created": created,
                "assigned": len(entries),
                "accepted": accepted,
                "declined": declined,
                "attended": len(attended_minutes),
            },
            "total_hours": round_half_up(sum(attended_minutes) / 60, 1),
            "response_rate": percentage(accepted + declined, len(entries)),
            "attendance_rate": percentage(len(attended_minutes), accepted),
        }

    async def status_summary(self, actor: CurrentUser) -> Dict[str, Any]:
        """Appointment status counts, attendee response counts and derived rates."""
        conditions = self.visibility(actor)
        totals = await self.reports.totals(conditions)
        responses = await self.reports.attendee_totals(conditions)
        return {
            "overview": {
                "total": totals["total"],
                "scheduled": totals["scheduled"],
                "completed": totals["completed"],
                "cancelled": totals["cancelled"],
            },
            "responses": {
                "total_attendees": responses["total"],
                "pending": responses["pending"],
                "accepted": responses["accepted"],
                "declined": responses["declined"],
            },
            "rates": {
                "response_rate": percentage(
                    responses["accepted"] + responses["declined"], responses["total"]
                ),
                "completion_rate": percentage(totals["completed"], totals["total"]),
                "cancellation_rate": percentage(totals["cancelled"], totals["total"]),
            },
        }


def get_report_service(session: AsyncSession) -> ReportService:
    """Get a report service instance."""
    return ReportService(session)
