"""Role-scoped appointment filtering, listing, summaries and export."""

import csv
import enum
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import (
    Appointment,
    AppointmentAttendee,
    AppointmentStatus,
    AttendeeStatus,
)
from scheduling_api.exceptions import (
    AuthorizationError,
    NotFoundError,
    NotImplementedFeatureError,
    ValidationError,
)
from scheduling_api.repositories.appointment_repository import AppointmentRepository
from scheduling_api.repositories.user_repository import UserRepository
from scheduling_api.services.auth_service import CurrentUser
from scheduling_api.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "excel", "json")

CSV_HEADERS = [
    "ID",
    "Title",
    "Description",
    "Manager Name",
    "Manager Email",
    "Scheduled Date",
    "Duration (minutes)",
    "Status",
    "Attendees",
    "Accepted Count",
    "Declined Count",
    "Pending Count",
    "Created At",
]


class Scope(str, enum.Enum):
    """Which side of an appointment the subject user must be on."""

    OWN = "own"  # manager OR attendee
    CREATED = "created"  # manager
    ASSIGNED = "assigned"  # attendee
    ALL = "all"  # no restriction


def resolve_scope(
    actor: CurrentUser, view_type: Optional[str] = None, default: Scope = Scope.OWN
) -> Scope:
    """Visibility for ``actor``: developers only ever see what they are assigned to."""
    if not actor.is_manager:
        return Scope.ASSIGNED
    if not view_type:
        return default
    try:
        return Scope(view_type)
    except ValueError:
        raise ValidationError("Type must be one of: own, created, assigned, all")


def parse_statuses(value: Optional[str]) -> List[str]:
    """Split a comma-separated status list, rejecting unknown values."""
    if not value:
        return []
    statuses = [part.strip() for part in value.split(",") if part.strip()]
    valid = {status.value for status in AppointmentStatus}
    unknown = [status for status in statuses if status not in valid]
    if unknown:
        raise ValidationError(f"Invalid status: {', '.join(unknown)}")
    return statuses


def parse_attendee_status(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if value not in {status.value for status in AttendeeStatus}:
        raise ValidationError("Attendee status must be one of: pending, accepted, declined")
    return value


@dataclass
class AppointmentFilter:
    """Composable appointment criteria; bounds are inclusive."""

    subject_id: Optional[str] = None
    scope: Scope = Scope.ALL
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    statuses: List[str] = field(default_factory=list)
    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    manager_id: Optional[str] = None
    attendee_id: Optional[str] = None
    attendee_status: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        """Criteria as echoed back in exports."""
        return {
            "scope": self.scope.value,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "status": self.statuses or None,
            "minDuration": self.min_duration,
            "maxDuration": self.max_duration,
            "managerId": self.manager_id,
            "attendeeId": self.attendee_id,
            "attendeeStatus": self.attendee_status,
        }


def build_conditions(criteria: AppointmentFilter) -> List[Any]:
    """Translate a filter into SQLAlchemy WHERE clauses over ``Appointment``."""
    conditions: List[Any] = []
    subject = criteria.subject_id

    if criteria.scope != Scope.ALL and subject is None:
        raise ValueError("A scoped filter needs a subject user")

    # In assigned views the response status refers to the subject's own entry
    own_entry_status = criteria.scope == Scope.ASSIGNED and criteria.attendee_status is not None

    if criteria.scope == Scope.CREATED:
        conditions.append(Appointment.manager_id == subject)
    elif criteria.scope == Scope.ASSIGNED:
        entry_clauses = [AppointmentAttendee.user_id == subject]
        if own_entry_status:
            entry_clauses.append(AppointmentAttendee.status == criteria.attendee_status)
        conditions.append(Appointment.attendees.any(*entry_clauses))
    elif criteria.scope == Scope.OWN:
        conditions.append(
            or_(
                Appointment.manager_id == subject,
                Appointment.attendees.any(AppointmentAttendee.user_id == subject),
            )
        )

    if criteria.start_date is not None:
        conditions.append(Appointment.scheduled_date >= ensure_utc(criteria.start_date))
    if criteria.end_date is not None:
        conditions.append(Appointment.scheduled_date <= ensure_utc(criteria.end_date))
    if criteria.statuses:
        conditions.append(Appointment.status.in_(criteria.statuses))
    if criteria.min_duration is not None:
        conditions.append(Appointment.duration >= criteria.min_duration)
    if criteria.max_duration is not None:
        conditions.append(Appointment.duration <= criteria.max_duration)
    if criteria.manager_id:
        conditions.append(Appointment.manager_id == criteria.manager_id)
    if criteria.attendee_id:
        conditions.append(
            Appointment.attendees.any(AppointmentAttendee.user_id == criteria.attendee_id)
        )
    if criteria.attendee_status and not own_entry_status:
        conditions.append(
            Appointment.attendees.any(AppointmentAttendee.status == criteria.attendee_status)
        )
    return conditions


def appointment_csv_row(appointment: Appointment) -> List[Any]:
    counts = {status.value: 0 for status in AttendeeStatus}
    for entry in appointment.attendees:
        counts[entry.status] = counts.get(entry.status, 0) + 1
    attendees = "; ".join(
        f"{entry.user.full_name} ({entry.status})" for entry in appointment.attendees
    )
    return [
        appointment.id,
        appointment.title,
        appointment.description or "",
        appointment.manager.full_name,
        appointment.manager.email,
        appointment.scheduled_date.isoformat(),
        appointment.duration,
        appointment.status,
        attendees,
        counts[AttendeeStatus.ACCEPTED.value],
        counts[AttendeeStatus.DECLINED.value],
        counts[AttendeeStatus.PENDING.value],
        appointment.created_at.isoformat(),
    ]


def render_csv(appointments: List[Appointment]) -> str:
    """Flatten appointments into CSV text, one row per appointment."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)
    for appointment in appointments:
        writer.writerow(appointment_csv_row(appointment))
    return output.getvalue()


@dataclass
class ExportResult:
    """Rendered export: either a JSON-ready payload or CSV text."""

    format: str
    total_records: int
    appointments: List[Appointment]
    filters: Dict[str, Any]
    exported_at: datetime
    content: Optional[str] = None

    @property
    def filename(self) -> str:
        return f"appointments_export_{self.exported_at.strftime('%Y-%m-%d')}.{self.format}"


class AppointmentQueryService:
    """Read side over appointments: listings, filter summaries and exports."""

    def __init__(self, session: AsyncSession):
        """
        Initialize query service.

        Args:
            session: Database session
        """
        self.appointments = AppointmentRepository(session)
        self.users = UserRepository(session)

    async def search(
        self, criteria: AppointmentFilter, page: int, limit: int
    ) -> Tuple[List[Appointment], int]:
        """One page of matching appointments (latest scheduled first) and the total."""
        return await self.appointments.search(build_conditions(criteria), page, limit)

    async def list_for_actor(
        self,
        actor: CurrentUser,
        criteria: AppointmentFilter,
        page: int,
        limit: int,
        view_type: Optional[str] = None,
    ) -> Tuple[List[Appointment], int]:
        """Listing endpoint: visibility derived from the actor's role and ``view_type``."""
        criteria.subject_id = actor.user_id
        criteria.scope = resolve_scope(actor, view_type)
        return await self.search(criteria, page, limit)

    async def my_created(
        self, actor: CurrentUser, criteria: AppointmentFilter, page: int, limit: int
    ) -> Tuple[List[Appointment], int]:
        """Appointments the actor manages. Non-managers simply have none."""
        if not actor.is_manager:
            return [], 0
        criteria.subject_id = actor.user_id
        criteria.scope = Scope.CREATED
        return await self.search(criteria, page, limit)

    async def my_assigned(
        self, actor: CurrentUser, criteria: AppointmentFilter, page: int, limit: int
    ) -> Tuple[List[Appointment], int]:
        """Appointments the actor attends, optionally by their own response status."""
        criteria.subject_id = actor.user_id
        criteria.scope = Scope.ASSIGNED
        return await self.search(criteria, page, limit)

    async def _check_user_view(self, actor: CurrentUser, user_id: str) -> None:
        if not actor.is_manager and actor.user_id != user_id:
            raise AuthorizationError("You can only view your own appointments")
        if await self.users.get_by_id(user_id) is None:
            raise NotFoundError("User", message="User not found")

    async def user_created(
        self, actor: CurrentUser, user_id: str, criteria: AppointmentFilter, page: int, limit: int
    ) -> Tuple[List[Appointment], int]:
        """Appointments managed by ``user_id`` (managers, or the user themself)."""
        await self._check_user_view(actor, user_id)
        criteria.subject_id = user_id
        criteria.scope = Scope.CREATED
        return await self.search(criteria, page, limit)

    async def user_assigned(
        self, actor: CurrentUser, user_id: str, criteria: AppointmentFilter, page: int, limit: int
    ) -> Tuple[List[Appointment], int]:
        """Appointments ``user_id`` attends (managers, or the user themself)."""
        await self._check_user_view(actor, user_id)
        criteria.subject_id = user_id
        criteria.scope = Scope.ASSIGNED
        return await self.search(criteria, page, limit)

    async def summarize(self, criteria: AppointmentFilter) -> Dict[str, Any]:
        """Status breakdown and rounded average duration over a filter."""
        conditions = build_conditions(criteria)
        breakdown = await self.appointments.status_breakdown(conditions)
        average = await self.appointments.average_duration(conditions)
        return {
            "total_appointments": sum(breakdown.values()),
            "status_breakdown": breakdown,
            "avg_duration": int(average + 0.5) if average is not None else 0,
        }

    async def filter(
        self,
        actor: CurrentUser,
        criteria: AppointmentFilter,
        page: int,
        limit: int,
        view_type: Optional[str] = None,
    ) -> Tuple[List[Appointment], int, Dict[str, Any]]:
        """Extended multi-criteria listing plus a summary over the whole match."""
        criteria.subject_id = actor.user_id
        criteria.scope = resolve_scope(actor, view_type, default=Scope.ALL)
        items, total = await self.search(criteria, page, limit)
        summary = await self.summarize(criteria)
        return items, total, summary

    async def export(
        self,
        actor: CurrentUser,
        criteria: AppointmentFilter,
        export_format: str,
        view_type: Optional[str] = None,
    ) -> ExportResult:
        """Unpaginated export of the same filter, as JSON data or CSV text."""
        export_format = (export_format or "").lower()
        if export_format not in EXPORT_FORMATS:
            raise ValidationError("Invalid export format. Supported: csv, excel, json")
        if export_format == "excel":
            raise NotImplementedFeatureError("Excel export not implemented yet")

        criteria.subject_id = actor.user_id
        criteria.scope = resolve_scope(actor, view_type, default=Scope.ALL)
        appointments = await self.appointments.find_all(build_conditions(criteria))
        result = ExportResult(
            format=export_format,
            total_records=len(appointments),
            appointments=appointments,
            filters=criteria.as_dict(),
            exported_at=utcnow(),
        )
        if export_format == "csv":
            result.content = render_csv(appointments)
        logger.info(
            f"User {actor.user_id} exported {len(appointments)} appointments as {export_format}"
        )
        return result


def get_appointment_query_service(session: AsyncSession) -> AppointmentQueryService:
    """Get an appointment query service instance."""
    return AppointmentQueryService(session)
