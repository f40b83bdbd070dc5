"""
# Route Dependencies

FastAPI dependencies shared by the project routes.

- **`get_db_manager`**: the `DatabaseManager` attached to the application.
- **`require_database`**: connection gate; raises `StorageUnavailable` (503)
  before any handler work when the database is not connected.
- **`get_project_repository`**: a `ProjectRepository` bound to that manager.
"""

from fastapi import Depends, Request

from renderapis.database.manager import DatabaseManager
from renderapis.exceptions import StorageUnavailable
from renderapis.managers.logging_manager import get_logger
from renderapis.services.project_repository import ProjectRepository

logger = get_logger(prefix="[GATE]")


def get_db_manager(request: Request) -> DatabaseManager:
    return request.app.state.db_manager


async def require_database(request: Request, db_manager: DatabaseManager = Depends(get_db_manager)) -> None:
    """Reject the request with 503 unless the database is connected."""
    if not db_manager.is_connected:
        logger.warning(
            "Rejected %s %s: database state is %s",
            request.method,
            request.url.path,
            db_manager.state.value,
        )
        raise StorageUnavailable()


def get_project_repository(db_manager: DatabaseManager = Depends(get_db_manager)) -> ProjectRepository:
    return ProjectRepository(db_manager)
