"""Aggregation queries backing the reporting endpoints."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Sequence, Tuple

from sqlalchemy import case, extract, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import (
    Appointment,
    AppointmentAttendee,
    AppointmentStatus,
    AttendeeStatus,
)
from scheduling_api.exceptions import DatabaseError

logger = logging.getLogger(__name__)


def _count_status(column: Any, value: str):
    return func.coalesce(func.sum(case((column == value, 1), else_=0)), 0)


class ReportRepository:
    """Read-only aggregates over appointments and attendee entries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _execute(self, query, what: str):
        try:
            return await self.session.execute(query)
        except SQLAlchemyError as e:
            logger.error(f"Error computing {what}: {e}")
            raise DatabaseError(f"Failed to compute {what}") from e

    async def monthly_breakdown(self, conditions: Sequence[Any]) -> Dict[int, Dict[str, int]]:
        """Per month number (1-12): total, per-status counts and summed duration."""
        month = extract("month", Appointment.scheduled_date)
        query = (
            select(
                month.label("month"),
                func.count(Appointment.id),
                _count_status(Appointment.status, AppointmentStatus.SCHEDULED.value),
                _count_status(Appointment.status, AppointmentStatus.COMPLETED.value),
                _count_status(Appointment.status, AppointmentStatus.CANCELLED.value),
                func.coalesce(func.sum(Appointment.duration), 0),
            )
            .where(*conditions)
            .group_by(month)
        )
        result = await self._execute(query, "monthly statistics")
        breakdown: Dict[int, Dict[str, int]] = {}
        for month_number, total, scheduled, completed, cancelled, duration in result.all():
            breakdown[int(month_number)] = {
                "total": int(total),
                "scheduled": int(scheduled),
                "completed": int(completed),
                "cancelled": int(cancelled),
                "total_duration": int(duration),
            }
        return breakdown

    async def totals(self, conditions: Sequence[Any]) -> Dict[str, float]:
        """Overall count, per-status counts, summed and average duration."""
        query = select(
            func.count(Appointment.id),
            _count_status(Appointment.status, AppointmentStatus.SCHEDULED.value),
            _count_status(Appointment.status, AppointmentStatus.COMPLETED.value),
            _count_status(Appointment.status, AppointmentStatus.CANCELLED.value),
            func.coalesce(func.sum(Appointment.duration), 0),
            func.avg(Appointment.duration),
        ).where(*conditions)
        result = await self._execute(query, "appointment totals")
        total, scheduled, completed, cancelled, duration, avg = result.one()
        return {
            "total": int(total or 0),
            "scheduled": int(scheduled or 0),
            "completed": int(completed or 0),
            "cancelled": int(cancelled or 0),
            "total_duration": int(duration or 0),
            "avg_duration": float(avg) if avg is not None else 0.0,
        }

    async def count(self, conditions: Sequence[Any]) -> int:
        result = await self._execute(
            select(func.count(Appointment.id)).where(*conditions), "appointment count"
        )
        return int(result.scalar() or 0)

    async def attendee_totals(self, conditions: Sequence[Any]) -> Dict[str, int]:
        """Attendee entry counts per response status across matching appointments."""
        query = (
            select(
                func.count(AppointmentAttendee.id),
                _count_status(AppointmentAttendee.status, AttendeeStatus.PENDING.value),
                _count_status(AppointmentAttendee.status, AttendeeStatus.ACCEPTED.value),
                _count_status(AppointmentAttendee.status, AttendeeStatus.DECLINED.value),
            )
            .select_from(Appointment)
            .join(AppointmentAttendee, AppointmentAttendee.appointment_id == Appointment.id)
            .where(*conditions)
        )
        result = await self._execute(query, "attendee totals")
        total, pending, accepted, declined = result.one()
        return {
            "total": int(total or 0),
            "pending": int(pending or 0),
            "accepted": int(accepted or 0),
            "declined": int(declined or 0),
        }

    async def attendance_per_appointment(
        self, conditions: Sequence[Any]
    ) -> List[Tuple[int, int, int]]:
        """(duration, attendee count, accepted count) for each matching appointment."""
        query = (
            select(
                Appointment.duration,
                func.count(AppointmentAttendee.id),
                _count_status(AppointmentAttendee.status, AttendeeStatus.ACCEPTED.value),
            )
            .select_from(Appointment)
            .outerjoin(AppointmentAttendee, AppointmentAttendee.appointment_id == Appointment.id)
            .where(*conditions)
            .group_by(Appointment.id, Appointment.duration)
        )
        result = await self._execute(query, "attendance statistics")
        return [(int(d), int(n), int(a)) for d, n, a in result.all()]

    async def assigned_entries(self, user_id: str, since: datetime) -> List[Tuple[str, str, int]]:
        """
        (entry status, appointment status, duration) for every appointment created
        since ``since`` that ``user_id`` is assigned to.
        """
        query = (
            select(AppointmentAttendee.status, Appointment.status, Appointment.duration)
            .select_from(Appointment)
            .join(AppointmentAttendee, AppointmentAttendee.appointment_id == Appointment.id)
            .where(AppointmentAttendee.user_id == user_id, Appointment.created_at >= since)
        )
        result = await self._execute(query, "user activity")
        return [(entry, status, int(duration)) for entry, status, duration in result.all()]
