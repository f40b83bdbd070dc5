"""
# Exception Handlers

Maps every failure to the standard error envelope:

```json
{"success": false, "message": "...", "error": "...", "details": [...], "stack": "...", "timestamp": "..."}
```

| Exception                       | Status                  | Notes                                       |
|---------------------------------|-------------------------|---------------------------------------------|
| `ServiceError` subclasses       | from `STATUS_CODES`     | `details` carried for validation failures   |
| `RequestValidationError`        | 400                     | FastAPI parameter validation                |
| `StarletteHTTPException` (404)  | 404                     | `Route <path> not found` plus `method`      |
| `StarletteHTTPException` other  | its own status          |                                             |
| anything else                   | 500                     | logged with context                         |

`error` and `stack` are diagnostic and only included in development.
`StorageUnavailable` always carries the short `error` text so clients can tell
an outage from an application failure.
"""

import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from renderapis.exceptions import ServiceError, StorageUnavailable, error_summary
from renderapis.managers.logging_manager import get_logger
from renderapis.utils.formatting import utc_now
from renderapis.utils.logging_utils import log_error_with_context

logger = get_logger(prefix="[ERROR_HANDLER]")

STORAGE_UNAVAILABLE_ERROR = "MongoDB connection not established"


def _timestamp() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


def _is_development(request: Request) -> bool:
    return request.app.state.settings.is_development


def error_envelope(
    message: str,
    *,
    error: Optional[str] = None,
    details: Optional[List[str]] = None,
    stack: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build the error body; keys whose value is None are omitted."""
    body: Dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    if details:
        body["details"] = details
    if stack is not None:
        body["stack"] = stack
    body.update(extra)
    body["timestamp"] = _timestamp()
    return body


def _format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status_code = exc.status_code
    if status_code >= 500:
        logger.error("%s %s -> %d %s", request.method, request.url.path, status_code, error_summary(exc))
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, status_code, exc.message)

    error = None
    stack = None
    if isinstance(exc, StorageUnavailable):
        error = STORAGE_UNAVAILABLE_ERROR
    elif _is_development(request):
        error = str(exc.cause) if exc.cause else exc.message
        stack = _format_stack(exc.cause or exc)

    return JSONResponse(
        status_code=status_code,
        content=error_envelope(exc.message, error=error, details=exc.details, stack=stack),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        details.append(f"{location}: {err.get('msg', 'invalid value')}")
    logger.info("%s %s -> 400 %s", request.method, request.url.path, details)
    return JSONResponse(status_code=400, content=error_envelope("Validation error", details=details))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        content = error_envelope(f"Route {request.url.path} not found", method=request.method)
    else:
        content = error_envelope(str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error_with_context(exc, {"operation": "request", "method": request.method, "path": request.url.path})
    development = _is_development(request)
    return JSONResponse(
        status_code=500,
        content=error_envelope(
            "Internal server error",
            error=str(exc) if development else None,
            stack=_format_stack(exc) if development else None,
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope-producing handlers to `app`."""
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
