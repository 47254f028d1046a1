"""Reporting endpoints."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from scheduling_api.auth.dependencies import get_current_user
from scheduling_api.dependencies import report_service
from scheduling_api.models.common import ApiResponse
from scheduling_api.models.reports import (
    ActivityReport,
    AttendedReport,
    CustomRangeReport,
    MonthlyReport,
    ScheduledReport,
    StatusSummaryReport,
)
from scheduling_api.services.auth_service import CurrentUser
from scheduling_api.services.report_service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get(
    "/meetings/monthly",
    response_model=ApiResponse[MonthlyReport],
    summary="Monthly meeting report",
)
async def monthly_report(
    year: Optional[int] = Query(None, description="Calendar year, defaults to the current one"),
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(report_service),
):
    """
    Appointment counts per month for one year.

    Managers see every appointment; developers see the ones they attend.
    """
    report = await service.monthly(current_user, year)
    return ApiResponse(
        message="Monthly meeting report generated successfully",
        data=MonthlyReport.model_validate(report),
    )


@router.get(
    "/meetings/custom",
    response_model=ApiResponse[CustomRangeReport],
    summary="Custom date range report",
)
async def custom_range_report(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(report_service),
):
    report = await service.custom_range(current_user, start_date, end_date)
    return ApiResponse(
        message="Custom date range report generated successfully",
        data=CustomRangeReport.model_validate(report),
    )


@router.get(
    "/meetings/scheduled",
    response_model=ApiResponse[ScheduledReport],
    summary="Scheduled meeting counts",
)
async def scheduled_report(
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(report_service),
):
    report = await service.scheduled_count(current_user)
    return ApiResponse(
        message="Scheduled meetings count retrieved successfully",
        data=ScheduledReport.model_validate(report),
    )


@router.get(
    "/meetings/attended",
    response_model=ApiResponse[AttendedReport],
    summary="Attended meetings",
)
async def attended_report(
    timeframe: Optional[str] = Query(None, description="week, month, quarter or year"),
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(report_service),
):
    report = await service.attended(current_user, timeframe)
    return ApiResponse(
        message="Attended meetings report generated successfully",
        data=AttendedReport.model_validate(report),
    )


@router.get(
    "/users/activity",
    response_model=ApiResponse[ActivityReport],
    summary="User activity report",
)
async def user_activity_report(
    user_id: Optional[str] = Query(None, alias="userId", description="Defaults to the caller"),
    timeframe: Optional[str] = Query(None, description="week, month, quarter or year"),
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(report_service),
):
    report = await service.user_activity(current_user, user_id, timeframe)
    return ApiResponse(
        message="User activity report generated successfully",
        data=ActivityReport.model_validate(report),
    )


@router.get(
    "/appointments/status",
    response_model=ApiResponse[StatusSummaryReport],
    summary="Appointment status summary",
)
async def status_summary_report(
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(report_service),
):
    report = await service.status_summary(current_user)
    return ApiResponse(
        message="Appointment status summary generated successfully",
        data=StatusSummaryReport.model_validate(report),
    )
