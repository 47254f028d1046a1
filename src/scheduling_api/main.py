"""FastAPI application entry point.

This module creates and configures the FastAPI application instance with:
- Application metadata and OpenAPI documentation
- Middleware (CORS, request context and access log, security headers)
- Exception handlers (APIException, HTTPException, ValidationError, general)
- API routers (v1)
- Health check endpoints (/health, /ready)
- Startup/shutdown lifecycle management (database, token cache, import queue)
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from scheduling_api.api.v1.router import router as v1_router
from scheduling_api.config import get_settings
from scheduling_api.database import check_connection, close_db, get_session_factory, init_db
from scheduling_api.exceptions import APIException
from scheduling_api.middleware import setup_middleware
from scheduling_api.services.file_storage import FileStorage
from scheduling_api.services.import_queue import ImportQueue
from scheduling_api.services.token_cache import TokenCache
from scheduling_api.utils.logging import get_logger, log_error, setup_logging
from scheduling_api.worker.tasks import fail_stuck_uploads

setup_logging()
logger = get_logger("main")

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Handles startup and shutdown of:
    - Database connection pool
    - Redis token cache
    - Bulk import queue (and the sweep of interrupted uploads)
    """
    logger.info("Starting Scheduling API service...")
    try:
        await init_db()

        app.state.token_cache = TokenCache.from_settings()
        app.state.file_storage = FileStorage.from_settings()

        app.state.import_queue = ImportQueue()
        if settings.imports.sweep_on_startup:
            try:
                await fail_stuck_uploads(get_session_factory())
            except Exception as e:
                logger.error(f"Stuck upload sweep failed: {e}", exc_info=True)

        logger.info("Scheduling API service started successfully")
        yield
    except Exception as e:
        logger.error(f"Failed to start Scheduling API service: {e}", exc_info=True)
        raise
    finally:
        logger.info("Shutting down Scheduling API service...")
        try:
            cache = getattr(app.state, "token_cache", None)
            if cache is not None:
                await cache.close()
            await close_db()
            logger.info("Scheduling API service shut down successfully")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)


app = FastAPI(
    title="Scheduling API",
    description=(
        "Role-based meeting scheduling: appointments with per-attendee responses, "
        "user blocking, filtering and export, bulk user import and reporting."
    ),
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    debug=settings.debug,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "authentication", "description": "Registration, login and password reset"},
        {"name": "blocking", "description": "Block and unblock users"},
        {"name": "appointments", "description": "Appointment lifecycle, responses and export"},
        {"name": "bulk-upload", "description": "Bulk user import from CSV and Excel"},
        {"name": "reports", "description": "Meeting and activity reports"},
        {"name": "v1", "description": "API v1 information and metadata"},
    ],
)

setup_middleware(app)

app.include_router(v1_router)


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle custom API exceptions."""
    context = {
        "method": request.method,
        "path": request.url.path,
        "status_code": exc.status_code,
        "code": exc.code,
    }
    if exc.status_code >= 500:
        log_error(exc, context=context)
    else:
        logger.warning(f"{exc.code}: {exc.message}", extra={"extra_fields": context})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Handle HTTP exceptions (404, 405, etc.)."""
    if exc.status_code == 404:
        logger.warning(f"404 Not Found: {request.method} {request.url.path}")
    else:
        log_error(
            exc,
            context={
                "method": request.method,
                "path": request.url.path,
                "status_code": exc.status_code,
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", []) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": error.get("msg")})

    logger.warning(
        f"Validation error: {request.method} {request.url.path}",
        extra={"extra_fields": {"validation_errors": errors}},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    log_error(
        exc,
        context={
            "method": request.method,
            "path": request.url.path,
            "unhandled": True,
        },
    )
    message = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": message},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "environment": settings.environment.value,
    }


@app.get("/ready")
async def readiness_check(request: Request):
    """Readiness check endpoint with database connectivity check."""
    db_connected = await check_connection()
    body = {
        "status": "ready" if db_connected else "not_ready",
        "app_name": settings.app_name,
        "environment": settings.environment.value,
        "database": "connected" if db_connected else "disconnected",
    }
    if not db_connected:
        logger.warning("Readiness check failed: database not connected")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body
