"""
# Logging Utilities

Request and lifecycle logging helpers used by the application factory.

- **`RequestLoggingMiddleware`**: one line per request with method, path, status
  and duration; also stamps an `X-Request-ID` header on the response.
- **`log_application_lifecycle`**: structured startup/shutdown milestones.
- **`log_error_with_context`**: error line plus the operation context that failed.
"""

import time
import uuid
from typing import Any, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from renderapis.managers.logging_manager import get_logger

request_logger = get_logger(prefix="[REQUEST]")
lifecycle_logger = get_logger(prefix="[LIFECYCLE]")
error_logger = get_logger(prefix="[ERROR]")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its outcome and elapsed time."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        user_agent = request.headers.get("user-agent", "")[:50]

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            request_logger.error(
                "500 %s %s - %.0fms - %s - %s [id=%s]: %s",
                request.method,
                request.url.path,
                duration_ms,
                client_ip,
                user_agent,
                request_id,
                e,
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        log = request_logger.warning if response.status_code >= 500 else request_logger.info
        log(
            "%d %s %s - %.0fms - %s - %s [id=%s]",
            response.status_code,
            request.method,
            request.url.path,
            duration_ms,
            client_ip,
            user_agent,
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response


def log_application_lifecycle(event: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Log a named application lifecycle milestone with optional details."""
    if details:
        lifecycle_logger.info("%s: %s", event, details)
    else:
        lifecycle_logger.info("%s", event)


def log_error_with_context(error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log an exception together with the context it occurred in.

    Args:
        error: The exception to record.
        context: Free-form keys such as `operation`, `path` or `project_id`.
    """
    error_logger.error(
        "%s: %s | context=%s",
        type(error).__name__,
        error,
        context or {},
        exc_info=(type(error), error, error.__traceback__),
    )
