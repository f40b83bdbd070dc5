"""
# RenderAPIs - Main Application Module

Entry point and lifecycle orchestrator for the RenderAPIs FastAPI service.

## Architecture Overview

```
┌────────────────────────────────────────────────────────────┐
│                    FastAPI Application                     │
│  ┌──────────────────────────────────────────────────────┐  │
│  │        Lifespan: connect ─▶ serve ─▶ disconnect      │  │
│  └──────────────────────────────────────────────────────┘  │
│  ┌────────────────┐  ┌─────────────────┐  ┌─────────────┐  │
│  │  Middleware    │  │  Routers        │  │  Mounts     │  │
│  │  - CORS        │  │  - System       │  │  - /metrics │  │
│  │  - Security    │  │  - Projects     │  │  - / static │  │
│  │  - Logging     │  │                 │  │             │  │
│  └────────────────┘  └─────────────────┘  └─────────────┘  │
└──────────────────────────────┬─────────────────────────────┘
                               ▼
                      ┌──────────────────┐
                      │ DatabaseManager  │──▶ MongoDB
                      │ (app.state)      │
                      └──────────────────┘
```

## Startup Sequence

1. **Fault handlers**: unhandled asyncio task errors and thread exceptions are
   logged and turned into a SIGTERM, which uvicorn handles like Ctrl+C.
2. **Database connection**: `db_manager.connect()`. A failure does not abort
   startup; the service keeps answering system endpoints while project routes
   return 503 (and, outside development, reconnection is attempted in the
   background).
3. **Indexes**: created only when the connection succeeded.

## Shutdown Sequence

SIGTERM/SIGINT stop uvicorn from accepting connections; the lifespan then
calls `db_manager.disconnect()`, which cancels pending reconnection and
closes the client.

## Usage

```bash
renderapis                                   # console script
uvicorn renderapis.main:app --port 3000      # any ASGI server
```
"""

import asyncio
import os
import signal
import threading
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from renderapis import __version__
from renderapis.config import Settings, settings as default_settings
from renderapis.database.manager import DatabaseManager, redact_url
from renderapis.managers.logging_manager import get_logger
from renderapis.middleware.error_handlers import register_exception_handlers
from renderapis.middleware.security_headers import SecurityHeadersMiddleware
from renderapis.routes.projects import router as projects_router
from renderapis.routes.system import router as system_router
from renderapis.utils.logging_utils import (
    RequestLoggingMiddleware,
    log_application_lifecycle,
    log_error_with_context,
)

logger = get_logger()


def _request_shutdown(reason: str) -> None:
    logger.critical("Initiating shutdown: %s", reason)
    os.kill(os.getpid(), signal.SIGTERM)


def install_fault_handlers(loop: asyncio.AbstractEventLoop) -> None:
    """
    Treat otherwise unobserved failures as fatal.

    Exceptions that escape background tasks or threads are logged with context
    and the process signals itself with SIGTERM so the normal graceful shutdown
    path runs.
    """

    def handle_loop_exception(_loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        if exc is None:
            logger.error("Event loop error: %s", context.get("message"))
            return
        log_error_with_context(exc, {"operation": "event_loop", "message": context.get("message")})
        _request_shutdown(f"unhandled task exception {type(exc).__name__}")

    def handle_thread_exception(args: threading.ExceptHookArgs) -> None:
        if args.exc_value is None or issubclass(args.exc_type, SystemExit):
            return
        log_error_with_context(args.exc_value, {"operation": "thread", "thread": getattr(args.thread, "name", None)})
        _request_shutdown(f"uncaught exception in thread {getattr(args.thread, 'name', '?')}")

    loop.set_exception_handler(handle_loop_exception)
    threading.excepthook = handle_thread_exception


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connect to MongoDB on startup and disconnect on shutdown.

    Startup never fails because of the database; the connection outcome is
    recorded in the manager's state and reported by `/health`.
    """
    config: Settings = app.state.settings
    db_manager: DatabaseManager = app.state.db_manager
    startup_start_time = time.time()

    log_application_lifecycle(
        "startup_initiated",
        {
            "app_name": config.APP_NAME,
            "version": config.APP_VERSION,
            "environment": config.ENVIRONMENT,
            "debug_mode": config.DEBUG,
        },
    )
    install_fault_handlers(asyncio.get_running_loop())

    db_connect_start = time.time()
    connected = await db_manager.connect()
    log_application_lifecycle(
        "database_connected" if connected else "database_unavailable",
        {
            "connection_duration": f"{time.time() - db_connect_start:.3f}s",
            "connection_url": redact_url(config.MONGODB_URL),
            "state": db_manager.state.value,
        },
    )
    if connected:
        await db_manager.create_indexes()

    log_application_lifecycle(
        "startup_completed",
        {"total_startup_duration": f"{time.time() - startup_start_time:.3f}s", "database_ready": connected},
    )
    logger.info("Server running on http://%s:%s (%s)", config.HOST, config.PORT, config.ENVIRONMENT)

    yield

    shutdown_start_time = time.time()
    log_application_lifecycle("shutdown_initiated")
    try:
        await db_manager.disconnect()
    except Exception as e:
        log_error_with_context(e, {"operation": "database_disconnection"})
    log_application_lifecycle(
        "shutdown_completed",
        {"total_shutdown_duration": f"{time.time() - shutdown_start_time:.3f}s"},
    )


def create_app(settings: Optional[Settings] = None, db_manager: Optional[DatabaseManager] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; defaults to the module-level settings.
        db_manager: Connection manager; a new one is created from `settings` if omitted.

    Returns:
        FastAPI: The configured application. The manager is available as
        `app.state.db_manager`.
    """
    config = settings or default_settings
    app = FastAPI(
        title=config.APP_NAME,
        description=config.APP_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        redirect_slashes=False,
        openapi_tags=[
            {"name": "System", "description": "Health, version and service information"},
            {"name": "Projects", "description": "Project portfolio CRUD operations"},
        ],
    )
    app.state.settings = config
    app.state.db_manager = db_manager or DatabaseManager(config)
    app.state.started_at = time.time()

    cors_origins = config.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=config.CORS_CREDENTIALS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, api_version=config.API_VERSION, enable_hsts=config.is_production)
    middleware = ["CORSMiddleware", "SecurityHeadersMiddleware"]
    if config.ENABLE_REQUEST_LOGGING:
        app.add_middleware(RequestLoggingMiddleware)
        middleware.append("RequestLoggingMiddleware")
    log_application_lifecycle("middleware_configured", {"middleware": middleware, "cors_origins": cors_origins})

    register_exception_handlers(app)

    app.include_router(system_router)
    app.include_router(projects_router)

    if config.METRICS_ENABLED:
        try:
            instrumentator = Instrumentator(
                should_group_status_codes=True,
                should_ignore_untemplated=True,
                should_respect_env_var=False,
                should_instrument_requests_inprogress=True,
            )
            instrumentator.instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")
            log_application_lifecycle("prometheus_configured", {"metrics_endpoint": "/metrics"})
        except Exception as e:
            log_error_with_context(e, {"operation": "prometheus_setup"})
            logger.error("Failed to configure Prometheus metrics: %s", e)

    # Mounted last so that API routes take precedence
    if config.STATIC_DIR and Path(config.STATIC_DIR).is_dir():
        app.mount("/", StaticFiles(directory=config.STATIC_DIR, html=True), name="static")
        log_application_lifecycle("static_files_mounted", {"directory": config.STATIC_DIR})

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the module-level app with uvicorn."""
    uvicorn.run(
        "renderapis.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.DEBUG,
        log_level=default_settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
