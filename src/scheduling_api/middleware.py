"""HTTP middleware: request context, access log and response headers."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from scheduling_api.config import get_settings
from scheduling_api.utils.logging import get_logger, log_request, set_request_id

logger = get_logger("middleware")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an id and write one access log line for it.

    The line names the acting user and role when the route authenticated
    one (``request.state.actor`` is set by ``get_current_user``).
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        set_request_id(request_id)
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        actor = getattr(request.state, "actor", None)
        log_request(
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            user_id=actor.user_id if actor else None,
            role=actor.role if actor else None,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Baseline security headers; HSTS only in production."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if get_settings().is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def setup_middleware(app: ASGIApp) -> None:
    """
    Register middleware. The last one added runs outermost, so the request
    context wraps everything and CORS answers preflights before it.
    """
    settings = get_settings()
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    # Export downloads and request ids must be readable by browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
        expose_headers=["Content-Disposition", REQUEST_ID_HEADER],
        max_age=settings.cors.max_age,
    )
    logger.info(f"Middleware configured, CORS origins={settings.cors.origins}")
