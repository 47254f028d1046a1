"""Pydantic models for appointment endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from scheduling_api.models.common import CamelModel, PaginatedResponse


class AppointmentCreateRequest(CamelModel):
    """Request model for scheduling an appointment."""

    title: Optional[str] = Field(None, description="Title (5-200 characters)")
    description: Optional[str] = Field(None, description="Description (up to 1000 characters)")
    attendee_ids: Optional[List[str]] = Field(None, description="Developer user IDs, in order")
    scheduled_date: Optional[datetime] = Field(None, description="Start time (ISO8601, future)")
    duration: Optional[int] = Field(None, description="Duration in minutes (at least 15)")


class AppointmentUpdateRequest(CamelModel):
    """Partial update; only supplied fields are applied."""

    title: Optional[str] = Field(None, description="Title (5-200 characters)")
    description: Optional[str] = Field(None, description="Description")
    attendee_ids: Optional[List[str]] = Field(None, description="Replacement attendee list")
    scheduled_date: Optional[datetime] = Field(None, description="New start time (future)")
    duration: Optional[int] = Field(None, description="Duration in minutes")
    status: Optional[str] = Field(None, description="scheduled, completed or cancelled")


class DeclineRequest(CamelModel):
    """Optional reason recorded on the decliner's entry."""

    reason: Optional[str] = Field(None, max_length=500, description="Reason for declining")


class PersonRef(CamelModel):
    """User reference embedded in appointments."""

    id: str = Field(..., description="User ID")
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")
    email: str = Field(..., description="Email")


class AttendeeUser(PersonRef):
    role: str = Field(..., description="User role")


class AttendeeResponse(CamelModel):
    """One attendee entry and its response."""

    user: AttendeeUser
    status: str = Field(..., description="pending, accepted or declined")
    responded_at: Optional[datetime] = Field(None, description="Time of response")
    notes: Optional[str] = Field(None, description="Decline reason or notes")


class AppointmentResponse(CamelModel):
    """Serialized appointment."""

    id: str = Field(..., description="Appointment ID")
    title: str = Field(..., description="Title")
    description: Optional[str] = Field(None, description="Description")
    manager: PersonRef
    attendees: List[AttendeeResponse] = Field(default_factory=list)
    scheduled_date: datetime = Field(..., description="Start time")
    duration: int = Field(..., description="Duration in minutes")
    status: str = Field(..., description="scheduled, completed or cancelled")
    created_at: datetime = Field(..., description="Created at timestamp")
    updated_at: datetime = Field(..., description="Updated at timestamp")


class StatusUser(CamelModel):
    id: str
    name: str
    email: str


class StatusAttendee(CamelModel):
    user: StatusUser
    status: str
    responded_at: Optional[datetime] = None
    notes: Optional[str] = None


class ResponseCounts(CamelModel):
    total_attendees: int
    accepted: int
    declined: int
    pending: int


class AppointmentStatusResponse(CamelModel):
    """Per-attendee response projection of one appointment."""

    appointment_id: str
    title: str
    status: str
    scheduled_date: datetime
    duration: int
    manager: StatusUser
    attendees: List[StatusAttendee]
    summary: ResponseCounts


class FilterSummary(CamelModel):
    """Aggregates over every appointment matching a filter."""

    total_appointments: int = Field(..., description="Matching appointments")
    status_breakdown: Dict[str, int] = Field(..., description="Count per status")
    avg_duration: int = Field(..., description="Rounded average duration in minutes")


class AppointmentExport(CamelModel):
    """JSON export payload."""

    export_date: datetime
    total_records: int
    filters: Dict[str, Any]
    data: List[AppointmentResponse]


class FilteredAppointments(PaginatedResponse[List[AppointmentResponse]]):
    """Paged filter results with aggregates over the whole match."""

    summary: FilterSummary
