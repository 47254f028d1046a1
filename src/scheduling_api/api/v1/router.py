"""API v1 router aggregation.

All v1 endpoints are prefixed with `/api/v1`.

Routers included:
- Authentication (`/api/v1/auth/*`)
- Blocking (`/api/v1/blocks/*`)
- Appointments (`/api/v1/appointments/*`)
- Bulk user upload (`/api/v1/bulk-upload/*`)
- Reports (`/api/v1/reports/*`)

Authentication:
- Every endpoint except `/api/v1/auth/*` (register, login, password reset)
  requires a bearer token via the `get_current_user` dependency
"""

from fastapi import APIRouter

from scheduling_api.api.v1 import appointments, auth, blocking, bulk_upload, reports

router = APIRouter(
    prefix="/api/v1",
    responses={
        400: {"description": "Validation error"},
        401: {"description": "Not authenticated"},
        403: {"description": "Forbidden"},
        404: {"description": "Not found"},
        500: {"description": "Internal server error"},
    },
)

router.include_router(auth.router)
router.include_router(blocking.router)
router.include_router(appointments.router)
router.include_router(bulk_upload.router)
router.include_router(reports.router)


@router.get(
    "/",
    summary="API Information",
    description="Get API version and status information",
    tags=["v1"],
)
async def api_info():
    """Public API version and endpoint index."""
    return {
        "version": "v1",
        "status": "active",
        "endpoints": {
            "auth": "/api/v1/auth",
            "blocks": "/api/v1/blocks",
            "appointments": "/api/v1/appointments",
            "bulk-upload": "/api/v1/bulk-upload",
            "reports": "/api/v1/reports",
        },
    }
