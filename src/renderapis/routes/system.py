"""
# System Routes

Operational endpoints that work whether or not the database is connected.

| Method | Path           | Purpose                                               |
|--------|----------------|-------------------------------------------------------|
| GET    | `/health`      | Server, database, memory and uptime report            |
| GET    | `/status`      | Redirects to `/health`                                |
| GET    | `/api`         | Service information and endpoint list                 |
| GET    | `/api/version` | Name, version, environment and build metadata         |
| GET    | `/api/docs`    | JSON endpoint and schema documentation                |

`/health` always answers 200 while the process is up; database problems are
reported in the body (`database.connected`, `database.healthy`) rather than
through the status code, so load balancers keep routing to an instance that
can still serve its static dashboard and system endpoints.
"""

import os
import platform
import re
import resource
import sys
import time
from importlib import metadata
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from renderapis.database.manager import DatabaseManager
from renderapis.managers.logging_manager import get_logger
from renderapis.models.project_models import ProjectStatus
from renderapis.routes.dependencies import get_db_manager
from renderapis.utils.formatting import format_bytes, format_uptime, utc_now
from renderapis.utils.logging_utils import log_error_with_context

logger = get_logger(prefix="[SYSTEM]")

router = APIRouter(tags=["System"])

DISTRIBUTION_NAME = "renderapis"
REQUIREMENT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*")

ENDPOINTS: Dict[str, str] = {
    "GET /": "Dashboard (static files)",
    "GET /health": "Server and database health check",
    "GET /status": "Alias for /health",
    "GET /api": "API information (this endpoint)",
    "GET /api/version": "Version and build information",
    "GET /api/docs": "API documentation",
    "GET /metrics": "Prometheus metrics",
    "GET /api/projects": "Get all projects",
    "GET /api/projects/{id}": "Get a single project",
    "POST /api/projects": "Create a new project",
    "PUT /api/projects/{id}": "Update a project",
    "DELETE /api/projects/{id}": "Delete a project",
}


def _timestamp() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


def _uptime_seconds(request: Request) -> float:
    return time.time() - request.app.state.started_at


def _memory_usage() -> Dict[str, Any]:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    # ru_maxrss is reported in bytes on macOS and kilobytes elsewhere
    max_rss = usage.ru_maxrss if sys.platform == "darwin" else usage.ru_maxrss * 1024
    return {
        "max_rss": max_rss,
        "user_cpu_seconds": round(usage.ru_utime, 3),
        "system_cpu_seconds": round(usage.ru_stime, 3),
        "formatted": {"max_rss": format_bytes(max_rss)},
    }


def _declared_dependencies() -> Dict[str, List[str]]:
    """Names of the distribution's runtime and test requirements."""
    try:
        requirements = metadata.requires(DISTRIBUTION_NAME) or []
    except metadata.PackageNotFoundError:
        logger.debug("Distribution %s not installed; dependency list unavailable", DISTRIBUTION_NAME)
        return {"production": [], "test": []}

    dependencies: Dict[str, List[str]] = {"production": [], "test": []}
    for requirement in requirements:
        match = REQUIREMENT_NAME_PATTERN.match(requirement)
        if not match:
            continue
        group = "test" if "extra ==" in requirement else "production"
        dependencies[group].append(match.group(0))
    return dependencies


@router.get("/health", summary="Server and database health check")
async def health_check(request: Request, db_manager: DatabaseManager = Depends(get_db_manager)):
    """
    Report process and database health.

    Detailed storage statistics are included when `HEALTH_DETAILED_CHECKS` is
    enabled and the database is connected.
    """
    settings = request.app.state.settings
    try:
        status = db_manager.get_status()
        database: Dict[str, Any] = {
            "connected": status.is_connected,
            "healthy": await db_manager.is_healthy(),
            "state": status.state.value,
            "ready_state": status.ready_state,
            "host": status.host,
            "port": status.port,
            "name": status.name,
            "connection_attempts": status.connection_attempts,
        }
        if settings.HEALTH_DETAILED_CHECKS and status.is_connected:
            stats = await db_manager.get_stats()
            if "error" in stats:
                database["stats_error"] = stats["error"]
            else:
                database["stats"] = {
                    **stats,
                    "formatted": {
                        "data_size": format_bytes(stats["data_size"]),
                        "storage_size": format_bytes(stats["storage_size"]),
                        "index_size": format_bytes(stats["index_size"]),
                    },
                }

        uptime = _uptime_seconds(request)
        return {
            "success": True,
            "status": "Server is running",
            "timestamp": _timestamp(),
            "database": database,
            "server": {
                "environment": settings.ENVIRONMENT,
                "python_version": platform.python_version(),
                "platform": sys.platform,
                "arch": platform.machine(),
                "pid": os.getpid(),
            },
            "memory": _memory_usage(),
            "uptime": {"raw": round(uptime, 3), "formatted": format_uptime(uptime)},
        }
    except Exception as e:
        log_error_with_context(e, {"operation": "health_check"})
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "status": "Health check failed",
                "error": str(e),
                "timestamp": _timestamp(),
            },
        )


@router.get("/status", summary="Alias for /health")
async def status_redirect():
    return RedirectResponse(url="/health")


@router.get("/api", summary="API information")
async def api_info(request: Request, db_manager: DatabaseManager = Depends(get_db_manager)):
    settings = request.app.state.settings
    return {
        "success": True,
        "message": f"Welcome to {settings.APP_NAME} - CRUD API for Project Management",
        "status": "Server is running",
        "database": "Connected" if db_manager.is_connected else "Disconnected",
        "version": settings.APP_VERSION,
        "api_version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": _timestamp(),
        "endpoints": ENDPOINTS,
        "cors": {
            "origins": settings.cors_origins_list,
            "credentials": settings.CORS_CREDENTIALS,
        },
    }


@router.get("/api/version", summary="Version and build information")
async def version_info(request: Request):
    settings = request.app.state.settings
    return {
        "success": True,
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": settings.APP_DESCRIPTION,
        "environment": settings.ENVIRONMENT,
        "python_version": platform.python_version(),
        "uptime": round(_uptime_seconds(request), 3),
        "timestamp": _timestamp(),
        "build": {
            "commit": settings.GIT_COMMIT,
            "branch": settings.GIT_BRANCH,
        },
        "dependencies": _declared_dependencies(),
    }


@router.get("/api/docs", summary="JSON API documentation")
async def api_docs(request: Request):
    """Hand-written endpoint reference; the generated OpenAPI UI lives at `/docs`."""
    settings = request.app.state.settings
    project_body = {
        "name": "string (required)",
        "description": "string (required)",
        "technologies": "array of strings",
        "status": "|".join(s.value for s in ProjectStatus),
        "startDate": "ISO 8601 date-time",
        "endDate": "ISO 8601 date-time",
        "repository": "string (URL)",
        "liveUrl": "string (URL)",
    }
    return {
        "success": True,
        "title": f"{settings.APP_NAME} Documentation",
        "version": settings.APP_VERSION,
        "base_url": str(request.base_url).rstrip("/"),
        "openapi": "/openapi.json",
        "endpoints": [
            {
                "method": "GET",
                "path": "/health",
                "description": "Check server and database health",
                "responses": {"200": "Health information with server and database status"},
            },
            {
                "method": "GET",
                "path": "/api/version",
                "description": "Get version and build information",
                "responses": {"200": "Version information including dependencies"},
            },
            {
                "method": "GET",
                "path": "/api/projects",
                "description": "Get all projects",
                "responses": {"200": "Array of projects with count", "503": "Database unavailable"},
            },
            {
                "method": "GET",
                "path": "/api/projects/{id}",
                "description": "Get a single project",
                "responses": {
                    "200": "The project",
                    "400": "Invalid ID format",
                    "404": "Project not found",
                    "503": "Database unavailable",
                },
            },
            {
                "method": "POST",
                "path": "/api/projects",
                "description": "Create a new project",
                "body": project_body,
                "responses": {
                    "201": "Project created successfully",
                    "400": "Validation error",
                    "503": "Database unavailable",
                },
            },
            {
                "method": "PUT",
                "path": "/api/projects/{id}",
                "description": "Update a project; null clears endDate, repository and liveUrl",
                "body": project_body,
                "responses": {
                    "200": "Project updated successfully",
                    "400": "Validation error or invalid ID format",
                    "404": "Project not found",
                    "503": "Database unavailable",
                },
            },
            {
                "method": "DELETE",
                "path": "/api/projects/{id}",
                "description": "Delete a project",
                "responses": {
                    "200": "Project deleted successfully",
                    "400": "Invalid ID format",
                    "404": "Project not found",
                    "503": "Database unavailable",
                },
            },
        ],
        "schemas": {
            "Project": {
                "id": "string (24 hex characters)",
                **project_body,
                "createdAt": "ISO 8601 date-time",
                "updatedAt": "ISO 8601 date-time",
            },
        },
    }
