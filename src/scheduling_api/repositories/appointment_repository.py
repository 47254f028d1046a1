"""Appointment repository for database operations."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from scheduling_api.database.models import Appointment, AppointmentAttendee, AttendeeStatus
from scheduling_api.exceptions import DatabaseError
from scheduling_api.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


def _with_relations():
    return (
        selectinload(Appointment.manager),
        selectinload(Appointment.attendees).selectinload(AppointmentAttendee.user),
    )


class AppointmentRepository(BaseRepository[Appointment]):
    """Repository for Appointment model operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Appointment, session)

    async def get_with_attendees(self, appointment_id: str) -> Optional[Appointment]:
        """
        Load an appointment with its manager and attendee entries (and their users).

        The identity map is refreshed so the result reflects the database even
        if the same appointment was loaded earlier in the session.
        """
        try:
            result = await self.session.execute(
                select(Appointment)
                .where(Appointment.id == appointment_id)
                .options(*_with_relations())
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting appointment {appointment_id}: {e}")
            raise DatabaseError("Failed to retrieve Appointment") from e

    async def create_appointment(
        self,
        title: str,
        description: Optional[str],
        manager_id: str,
        scheduled_date: datetime,
        duration: int,
        attendee_ids: Sequence[str],
    ) -> Appointment:
        """Persist a scheduled appointment with one pending entry per attendee, in order."""
        attendees = [
            AppointmentAttendee(user_id=user_id, position=position)
            for position, user_id in enumerate(attendee_ids)
        ]
        appointment = await self.create(
            title=title,
            description=description,
            manager_id=manager_id,
            scheduled_date=scheduled_date,
            duration=duration,
            attendees=attendees,
        )
        return appointment

    async def set_attendee_response(
        self,
        appointment_id: str,
        user_id: str,
        status: AttendeeStatus,
        responded_at: datetime,
        notes: Optional[str] = None,
    ) -> bool:
        """
        Record a response on a single pending attendee row.

        Returns:
            False if the entry does not exist or was already answered
        """
        values: Dict[str, Any] = {"status": status.value, "responded_at": responded_at}
        if notes is not None:
            values["notes"] = notes
        try:
            result = await self.session.execute(
                update(AppointmentAttendee)
                .where(
                    AppointmentAttendee.appointment_id == appointment_id,
                    AppointmentAttendee.user_id == user_id,
                    AppointmentAttendee.status == AttendeeStatus.PENDING.value,
                )
                .values(**values)
            )
            return (result.rowcount or 0) == 1
        except SQLAlchemyError as e:
            logger.error(f"Error recording response on appointment {appointment_id}: {e}")
            await self.session.rollback()
            raise DatabaseError("Failed to update attendee response") from e

    async def search(
        self, conditions: Sequence[Any], page: int, limit: int
    ) -> Tuple[List[Appointment], int]:
        """One page of appointments matching ``conditions``, latest scheduled first."""
        query = (
            select(Appointment)
            .where(*conditions)
            .options(*_with_relations())
            .order_by(Appointment.scheduled_date.desc(), Appointment.id)
        )
        return await self.paginate(query, page, limit)

    async def find_all(self, conditions: Sequence[Any]) -> List[Appointment]:
        """Every appointment matching ``conditions``, latest scheduled first."""
        query = (
            select(Appointment)
            .where(*conditions)
            .options(*_with_relations())
            .order_by(Appointment.scheduled_date.desc(), Appointment.id)
        )
        return list(await self.all(query))

    async def status_breakdown(self, conditions: Sequence[Any]) -> Dict[str, int]:
        """Count of matching appointments per status."""
        try:
            result = await self.session.execute(
                select(Appointment.status, func.count(Appointment.id))
                .where(*conditions)
                .group_by(Appointment.status)
            )
            return {status: count for status, count in result.all()}
        except SQLAlchemyError as e:
            logger.error(f"Error computing status breakdown: {e}")
            raise DatabaseError("Failed to summarize appointments") from e

    async def average_duration(self, conditions: Sequence[Any]) -> Optional[float]:
        """Average duration of matching appointments, None when nothing matches."""
        try:
            result = await self.session.execute(
                select(func.avg(Appointment.duration)).where(*conditions)
            )
            value = result.scalar()
            return float(value) if value is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error computing average duration: {e}")
            raise DatabaseError("Failed to summarize appointments") from e
