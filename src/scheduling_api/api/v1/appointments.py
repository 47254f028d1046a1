"""Appointment endpoints: lifecycle, responses, listings, filtering and export."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from scheduling_api.auth.dependencies import get_current_user
from scheduling_api.database.models import AttendeeStatus
from scheduling_api.dependencies import appointment_query_service, appointment_service
from scheduling_api.models.appointments import (
    AppointmentCreateRequest,
    AppointmentExport,
    AppointmentResponse,
    AppointmentStatusResponse,
    AppointmentUpdateRequest,
    DeclineRequest,
    FilteredAppointments,
    FilterSummary,
)
from scheduling_api.models.common import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ApiResponse,
    PaginatedResponse,
    Pagination,
)
from scheduling_api.services.appointment_query import (
    AppointmentFilter,
    AppointmentQueryService,
    parse_attendee_status,
    parse_statuses,
)
from scheduling_api.services.appointment_service import AppointmentService
from scheduling_api.services.auth_service import CurrentUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


def appointment_filter(
    start_date: Optional[datetime] = Query(None, alias="startDate", description="Earliest start"),
    end_date: Optional[datetime] = Query(None, alias="endDate", description="Latest start"),
    status_: Optional[str] = Query(None, alias="status", description="Comma-separated statuses"),
    min_duration: Optional[int] = Query(None, alias="minDuration", ge=0),
    max_duration: Optional[int] = Query(None, alias="maxDuration", ge=0),
    manager_id: Optional[str] = Query(None, alias="managerId"),
    attendee_id: Optional[str] = Query(None, alias="attendeeId"),
    attendee_status: Optional[str] = Query(None, alias="attendeeStatus"),
    response_status: Optional[str] = Query(
        None, alias="responseStatus", description="Response on the subject's own entry"
    ),
) -> AppointmentFilter:
    """Query parameters shared by every listing endpoint."""
    return AppointmentFilter(
        start_date=start_date,
        end_date=end_date,
        statuses=parse_statuses(status_),
        min_duration=min_duration,
        max_duration=max_duration,
        manager_id=manager_id,
        attendee_id=attendee_id,
        attendee_status=parse_attendee_status(response_status or attendee_status),
    )


def view_type(
    type_: Optional[str] = Query(None, alias="type", description="own, created, assigned or all"),
    my_appointments: bool = Query(False, alias="myAppointments"),
) -> Optional[str]:
    return "own" if my_appointments else type_


def _page(
    message: str, items, page: int, limit: int, total: int
) -> PaginatedResponse[List[AppointmentResponse]]:
    return PaginatedResponse(
        message=message,
        data=[AppointmentResponse.model_validate(item) for item in items],
        pagination=Pagination.build(page, limit, total),
    )


PageQuery = Query(1, ge=1, description="Page number")
LimitQuery = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size")


@router.get(
    "",
    response_model=PaginatedResponse[List[AppointmentResponse]],
    summary="List appointments",
)
async def list_appointments(
    page: int = PageQuery,
    limit: int = LimitQuery,
    criteria: AppointmentFilter = Depends(appointment_filter),
    scope: Optional[str] = Depends(view_type),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentQueryService = Depends(appointment_query_service),
):
    """
    List appointments visible to the caller, latest scheduled first.

    Managers see appointments they manage or attend unless ``type`` narrows
    or widens the view; developers only see appointments they attend.
    """
    items, total = await service.list_for_actor(current_user, criteria, page, limit, scope)
    return _page("Appointments retrieved successfully", items, page, limit, total)


@router.post(
    "",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create appointment",
)
async def create_appointment(
    request: AppointmentCreateRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(appointment_service),
):
    appointment = await service.create(
        current_user,
        title=request.title,
        attendee_ids=request.attendee_ids,
        scheduled_date=request.scheduled_date,
        duration=request.duration,
        description=request.description,
    )
    return ApiResponse(
        message="Appointment created successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.get(
    "/my-created",
    response_model=PaginatedResponse[List[AppointmentResponse]],
    summary="Appointments I manage",
)
async def my_created(
    page: int = PageQuery,
    limit: int = LimitQuery,
    criteria: AppointmentFilter = Depends(appointment_filter),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentQueryService = Depends(appointment_query_service),
):
    items, total = await service.my_created(current_user, criteria, page, limit)
    message = (
        "Created appointments retrieved successfully"
        if current_user.is_manager
        else "No created appointments (only managers can create appointments)"
    )
    return _page(message, items, page, limit, total)


@router.get(
    "/my-assigned",
    response_model=PaginatedResponse[List[AppointmentResponse]],
    summary="Appointments I attend",
)
async def my_assigned(
    page: int = PageQuery,
    limit: int = LimitQuery,
    criteria: AppointmentFilter = Depends(appointment_filter),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentQueryService = Depends(appointment_query_service),
):
    items, total = await service.my_assigned(current_user, criteria, page, limit)
    return _page("Assigned appointments retrieved successfully", items, page, limit, total)


@router.get("/filter", response_model=FilteredAppointments, summary="Filter appointments")
async def filter_appointments(
    page: int = PageQuery,
    limit: int = LimitQuery,
    criteria: AppointmentFilter = Depends(appointment_filter),
    scope: Optional[str] = Depends(view_type),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentQueryService = Depends(appointment_query_service),
):
    """Multi-criteria listing with a status breakdown and average duration of the match."""
    items, total, summary = await service.filter(current_user, criteria, page, limit, scope)
    return FilteredAppointments(
        message="Filtered appointments retrieved successfully",
        data=[AppointmentResponse.model_validate(item) for item in items],
        pagination=Pagination.build(page, limit, total),
        summary=FilterSummary.model_validate(summary),
    )


@router.get("/export", summary="Export appointments")
async def export_appointments(
    export_format: str = Query("csv", alias="format", description="csv, json or excel"),
    criteria: AppointmentFilter = Depends(appointment_filter),
    scope: Optional[str] = Depends(view_type),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentQueryService = Depends(appointment_query_service),
) -> Response:
    """Download every matching appointment as a CSV or JSON attachment."""
    result = await service.export(current_user, criteria, export_format, scope)
    headers = {"Content-Disposition": f'attachment; filename="{result.filename}"'}
    if result.format == "csv":
        return Response(content=result.content, media_type="text/csv", headers=headers)
    payload = AppointmentExport(
        export_date=result.exported_at,
        total_records=result.total_records,
        filters=result.filters,
        data=[AppointmentResponse.model_validate(item) for item in result.appointments],
    )
    return Response(
        content=payload.model_dump_json(by_alias=True),
        media_type="application/json",
        headers=headers,
    )


@router.get(
    "/users/{user_id}/created",
    response_model=PaginatedResponse[List[AppointmentResponse]],
    summary="Appointments managed by a user",
)
async def user_created(
    user_id: str,
    page: int = PageQuery,
    limit: int = LimitQuery,
    criteria: AppointmentFilter = Depends(appointment_filter),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentQueryService = Depends(appointment_query_service),
):
    items, total = await service.user_created(current_user, user_id, criteria, page, limit)
    return _page("Created appointments retrieved successfully", items, page, limit, total)


@router.get(
    "/users/{user_id}/assigned",
    response_model=PaginatedResponse[List[AppointmentResponse]],
    summary="Appointments a user attends",
)
async def user_assigned(
    user_id: str,
    page: int = PageQuery,
    limit: int = LimitQuery,
    criteria: AppointmentFilter = Depends(appointment_filter),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentQueryService = Depends(appointment_query_service),
):
    items, total = await service.user_assigned(current_user, user_id, criteria, page, limit)
    return _page("Assigned appointments retrieved successfully", items, page, limit, total)


@router.get(
    "/{appointment_id}",
    response_model=ApiResponse[AppointmentResponse],
    summary="Get appointment",
)
async def get_appointment(
    appointment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(appointment_service),
):
    appointment = await service.get(appointment_id, current_user)
    return ApiResponse(
        message="Appointment retrieved successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.put(
    "/{appointment_id}",
    response_model=ApiResponse[AppointmentResponse],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: str,
    request: AppointmentUpdateRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(appointment_service),
):
    """Partial update by the managing manager; retained attendees keep their responses."""
    fields = request.model_dump(exclude_unset=True)
    appointment = await service.update(appointment_id, current_user, fields)
    return ApiResponse(
        message="Appointment updated successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.delete(
    "/{appointment_id}",
    response_model=ApiResponse[None],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(appointment_service),
):
    await service.delete(appointment_id, current_user)
    return ApiResponse(message="Appointment deleted successfully")


@router.put(
    "/{appointment_id}/accept",
    response_model=ApiResponse[AppointmentResponse],
    summary="Accept appointment",
)
async def accept_appointment(
    appointment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(appointment_service),
):
    appointment = await service.respond(appointment_id, current_user, AttendeeStatus.ACCEPTED)
    return ApiResponse(
        message="Appointment accepted successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.put(
    "/{appointment_id}/decline",
    response_model=ApiResponse[AppointmentResponse],
    summary="Decline appointment",
)
async def decline_appointment(
    appointment_id: str,
    request: Optional[DeclineRequest] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(appointment_service),
):
    reason = request.reason if request else None
    appointment = await service.respond(
        appointment_id, current_user, AttendeeStatus.DECLINED, notes=reason
    )
    return ApiResponse(
        message="Appointment declined successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.get(
    "/{appointment_id}/status",
    response_model=ApiResponse[AppointmentStatusResponse],
    summary="Attendee response status",
)
async def appointment_status(
    appointment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(appointment_service),
):
    summary = await service.status_summary(appointment_id, current_user)
    return ApiResponse(
        message="Appointment status retrieved successfully",
        data=AppointmentStatusResponse.model_validate(summary),
    )
