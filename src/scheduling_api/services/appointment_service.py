"""Appointment lifecycle: creation, edits, deletion and attendee responses."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import (
    Appointment,
    AppointmentAttendee,
    AppointmentStatus,
    AttendeeStatus,
    User,
)
from scheduling_api.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from scheduling_api.repositories.appointment_repository import AppointmentRepository
from scheduling_api.repositories.user_repository import UserRepository
from scheduling_api.services.auth_service import CurrentUser
from scheduling_api.services.blocking_service import BlockingService
from scheduling_api.utils.logging import bind_log_context
from scheduling_api.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
MIN_DURATION_MINUTES = 15

UPDATABLE_FIELDS = ("title", "description", "scheduled_date", "duration", "status", "attendee_ids")
APPOINTMENT_STATUSES = tuple(status.value for status in AppointmentStatus)
TERMINAL_STATUSES = (AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value)


def validate_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if len(title) < TITLE_MIN_LENGTH:
        raise ValidationError(f"Title must be at least {TITLE_MIN_LENGTH} characters")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
    return title


def validate_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    description = description.strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
    return description or None


def validate_duration(duration: Any) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValidationError("Duration must be a whole number of minutes")
    if duration < MIN_DURATION_MINUTES:
        raise ValidationError(f"Duration must be at least {MIN_DURATION_MINUTES} minutes")
    return duration


def validate_future_date(scheduled_date: Optional[datetime]) -> datetime:
    scheduled_date = ensure_utc(scheduled_date)
    if scheduled_date is None or scheduled_date <= utcnow():
        raise ValidationError("Scheduled date must be in the future")
    return scheduled_date


def validate_status(status: Optional[str]) -> str:
    if status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(APPOINTMENT_STATUSES)}")
    return status


class AppointmentService:
    """Service owning appointment state and attendee responses."""

    def __init__(self, session: AsyncSession, blocking: Optional[BlockingService] = None):
        """
        Initialize appointment service.

        Args:
            session: Database session
            blocking: Blocking ledger consulted on every attendee assignment
        """
        self.appointments = AppointmentRepository(session)
        self.users = UserRepository(session)
        self.blocking = blocking or BlockingService(session)

    async def _resolve_attendees(
        self, manager_id: str, attendee_ids: Optional[Sequence[str]]
    ) -> List[User]:
        """
        Load attendees in the given order and check they may be assigned.

        Raises:
            ValidationError: empty or duplicated list, or a non-developer attendee
            NotFoundError: an id does not resolve to a user
            AuthorizationError: an attendee and the manager have a block edge
        """
        if not attendee_ids:
            raise ValidationError("At least one attendee is required")
        if len(set(attendee_ids)) != len(attendee_ids):
            raise ValidationError("Duplicate attendees are not allowed")

        found = {user.id: user for user in await self.users.get_by_ids(attendee_ids)}
        if len(found) != len(attendee_ids):
            raise NotFoundError("Attendee", message="One or more attendees not found")
        attendees = [found[user_id] for user_id in attendee_ids]

        if not all(user.is_developer for user in attendees):
            raise ValidationError("All attendees must be developers")

        blocked = await self.blocking.find_blocked_attendee(manager_id, attendees)
        if blocked is not None:
            logger.info(
                f"Rejected assignment of {blocked.id} by manager {manager_id}: blocking restriction"
            )
            raise AuthorizationError(
                f"Cannot schedule appointment with {blocked.full_name} "
                f"due to blocking restrictions"
            )
        return attendees

    async def _load(self, appointment_id: str) -> Appointment:
        bind_log_context(appointment_id=appointment_id)
        appointment = await self.appointments.get_with_attendees(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", message="Appointment not found")
        return appointment

    async def create(
        self,
        actor: CurrentUser,
        title: Optional[str],
        attendee_ids: Optional[Sequence[str]],
        scheduled_date: Optional[datetime],
        duration: Optional[int],
        description: Optional[str] = None,
    ) -> Appointment:
        """Create a scheduled appointment with every attendee pending."""
        if not actor.is_manager:
            raise AuthorizationError("Only managers can create appointments")
        if not title or attendee_ids is None or scheduled_date is None or duration is None:
            raise ValidationError("Title, attendees, scheduled date, and duration are required")
        if not attendee_ids:
            raise ValidationError("At least one attendee is required")

        title = validate_title(title)
        description = validate_description(description)
        duration = validate_duration(duration)
        scheduled_date = validate_future_date(scheduled_date)
        attendees = await self._resolve_attendees(actor.user_id, list(attendee_ids))

        appointment = await self.appointments.create_appointment(
            title=title,
            description=description,
            manager_id=actor.user_id,
            scheduled_date=scheduled_date,
            duration=duration,
            attendee_ids=[user.id for user in attendees],
        )
        logger.info(
            f"Appointment {appointment.id} created by {actor.user_id} "
            f"with {len(attendees)} attendees"
        )
        return await self._load(appointment.id)

    async def get(self, appointment_id: str, actor: CurrentUser) -> Appointment:
        """Fetch an appointment visible to its manager and attendees only."""
        appointment = await self._load(appointment_id)
        if not appointment.is_visible_to(actor.user_id):
            raise AuthorizationError("You do not have access to this appointment")
        return appointment

    async def update(
        self, appointment_id: str, actor: CurrentUser, fields: Dict[str, Any]
    ) -> Appointment:
        """
        Apply a partial edit by the owning manager.

        Only keys in ``UPDATABLE_FIELDS`` are considered. When ``attendee_ids``
        is supplied, retained attendees keep their entry (status, response
        time and notes) and new attendees start pending.
        """
        if not actor.is_manager:
            raise AuthorizationError("Only managers can update appointments")
        appointment = await self._load(appointment_id)
        if appointment.manager_id != actor.user_id:
            raise AuthorizationError("You can only update your own appointments")

        fields = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS}
        if not fields:
            raise ValidationError("No valid fields to update")

        changes: Dict[str, Any] = {}
        if "title" in fields:
            changes["title"] = validate_title(fields["title"])
        if "description" in fields:
            changes["description"] = validate_description(fields["description"])
        if "scheduled_date" in fields:
            changes["scheduled_date"] = validate_future_date(fields["scheduled_date"])
        if "duration" in fields:
            changes["duration"] = validate_duration(fields["duration"])
        if "status" in fields:
            status = validate_status(fields["status"])
            if appointment.status in TERMINAL_STATUSES and status != appointment.status:
                raise ValidationError(
                    f"Cannot change status of a {appointment.status} appointment"
                )
            changes["status"] = status

        new_entries = None
        if "attendee_ids" in fields:
            attendee_ids = fields["attendee_ids"]
            attendees = await self._resolve_attendees(
                appointment.manager_id, list(attendee_ids) if attendee_ids else []
            )
            existing = {entry.user_id: entry for entry in appointment.attendees}
            new_entries = []
            for position, user in enumerate(attendees):
                entry = existing.get(user.id) or AppointmentAttendee(user_id=user.id)
                entry.position = position
                new_entries.append(entry)

        if new_entries is not None:
            appointment.attendees = new_entries
        await self.appointments.update(appointment, **changes)
        logger.info(
            f"Appointment {appointment_id} updated by {actor.user_id}: "
            f"{', '.join(sorted(fields))}"
        )
        return await self._load(appointment_id)

    async def delete(self, appointment_id: str, actor: CurrentUser) -> None:
        """Hard-delete an appointment owned by the acting manager."""
        if not actor.is_manager:
            raise AuthorizationError("Only managers can delete appointments")
        appointment = await self._load(appointment_id)
        if appointment.manager_id != actor.user_id:
            raise AuthorizationError("You can only delete your own appointments")
        await self.appointments.delete(appointment)
        logger.info(f"Appointment {appointment_id} deleted by {actor.user_id}")

    async def respond(
        self,
        appointment_id: str,
        actor: CurrentUser,
        decision: AttendeeStatus,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Record the actor's accept/decline on their own attendee entry.

        Declining is limited to developers; accepting has no role check.
        """
        if decision == AttendeeStatus.DECLINED and not actor.is_developer:
            raise AuthorizationError("Only developers can decline appointments")
        if decision == AttendeeStatus.PENDING:
            raise ValidationError("Response must be accepted or declined")

        appointment = await self._load(appointment_id)
        entry = appointment.attendee_entry(actor.user_id)
        if entry is None:
            raise AuthorizationError("You are not assigned to this appointment")
        if entry.status != AttendeeStatus.PENDING.value:
            raise ConflictError(f"You have already {entry.status} this appointment")

        notes = notes.strip() if notes and notes.strip() else None
        recorded = await self.appointments.set_attendee_response(
            appointment_id, actor.user_id, decision, utcnow(), notes
        )
        if not recorded:
            raise ConflictError("Your response to this appointment has already been recorded")
        logger.info(f"User {actor.user_id} {decision.value} appointment {appointment_id}")
        return await self._load(appointment_id)

    async def status_summary(self, appointment_id: str, actor: CurrentUser) -> Dict[str, Any]:
        """Per-attendee response projection with accepted/declined/pending counts."""
        appointment = await self.get(appointment_id, actor)
        counts = {status.value: 0 for status in AttendeeStatus}
        for entry in appointment.attendees:
            counts[entry.status] = counts.get(entry.status, 0) + 1
        return {
            "appointment_id": appointment.id,
            "title": appointment.title,
            "status": appointment.status,
            "scheduled_date": appointment.scheduled_date,
            "duration": appointment.duration,
            "manager": {
                "id": appointment.manager.id,
                "name": appointment.manager.full_name,
                "email": appointment.manager.email,
            },
            "attendees": [
                {
                    "user": {
                        "id": entry.user.id,
                        "name": entry.user.full_name,
                        "email": entry.user.email,
                    },
                    "status": entry.status,
                    "responded_at": entry.responded_at,
                    "notes": entry.notes,
                }
                for entry in appointment.attendees
            ],
            "summary": {
                "total_attendees": len(appointment.attendees),
                "accepted": counts[AttendeeStatus.ACCEPTED.value],
                "declined": counts[AttendeeStatus.DECLINED.value],
                "pending": counts[AttendeeStatus.PENDING.value],
            },
        }


def get_appointment_service(session: AsyncSession) -> AppointmentService:
    """Get an appointment service instance."""
    return AppointmentService(session, BlockingService(session))
