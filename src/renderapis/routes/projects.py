"""
# Project Routes

CRUD endpoints for projects under `/api/projects`.

## Request Pipeline

```
request ─▶ require_database (503 gate) ─▶ sanitizer ─▶ repository ─▶ envelope
                                     └──────── ServiceError ──▶ exception handlers
```

The gate is a router-level dependency, so every route answers 503 while the
database is unavailable and the repository is never called. Request bodies are
read inside the handler, after the gate, which keeps a malformed body on a
disconnected service a 503 rather than a 400.

## Endpoints

| Method | Path                  | Success |
|--------|-----------------------|---------|
| GET    | `/api/projects`       | 200     |
| GET    | `/api/projects/{id}`  | 200     |
| POST   | `/api/projects`       | 201     |
| PUT    | `/api/projects/{id}`  | 200     |
| DELETE | `/api/projects/{id}`  | 200     |
"""

from typing import List

from fastapi import APIRouter, Depends, Request, status

from renderapis.managers.logging_manager import get_logger
from renderapis.models.project_models import ApiResponse, DeletedProject, Project, ProjectCreate, ProjectUpdate
from renderapis.routes.dependencies import get_project_repository, require_database
from renderapis.services.project_repository import ProjectRepository
from renderapis.services.project_sanitizer import project_sanitizer, read_json_body

logger = get_logger(prefix="[PROJECTS]")

router = APIRouter(
    prefix="/api/projects",
    tags=["Projects"],
    dependencies=[Depends(require_database)],
)


def _json_body(model: type) -> dict:
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema(by_alias=True)}},
        }
    }


@router.get(
    "",
    response_model=ApiResponse[List[Project]],
    response_model_exclude_none=True,
    summary="List all projects",
)
async def list_projects(repository: ProjectRepository = Depends(get_project_repository)):
    """Return every project, newest first, with the total count."""
    projects = await repository.get_all()
    return ApiResponse[List[Project]](data=projects, count=len(projects))


@router.get(
    "/{project_id}",
    response_model=ApiResponse[Project],
    response_model_exclude_none=True,
    summary="Get a project",
)
async def get_project(project_id: str, repository: ProjectRepository = Depends(get_project_repository)):
    project_sanitizer.validate_project_id(project_id)
    project = await repository.get_by_id(project_id)
    return ApiResponse[Project](data=project)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[Project],
    response_model_exclude_none=True,
    summary="Create a project",
    openapi_extra=_json_body(ProjectCreate),
)
async def create_project(request: Request, repository: ProjectRepository = Depends(get_project_repository)):
    """
    Create a project from the whitelisted fields of the body.

    `name` and `description` are required; unknown fields are ignored.
    """
    fields = project_sanitizer.sanitize_create(await read_json_body(request))
    project = await repository.create(fields)
    logger.info("Project %s created via API", project.id)
    return ApiResponse[Project](message="Project created successfully", data=project)


@router.put(
    "/{project_id}",
    response_model=ApiResponse[Project],
    response_model_exclude_none=True,
    summary="Update a project",
    openapi_extra=_json_body(ProjectUpdate),
)
async def update_project(
    project_id: str,
    request: Request,
    repository: ProjectRepository = Depends(get_project_repository),
):
    """
    Update the supplied fields of a project.

    Sending `endDate`, `repository` or `liveUrl` as null clears that field.
    """
    project_sanitizer.validate_project_id(project_id)
    fields = project_sanitizer.sanitize_update(await read_json_body(request))
    project = await repository.update(project_id, fields)
    return ApiResponse[Project](message="Project updated successfully", data=project)


@router.delete(
    "/{project_id}",
    response_model=ApiResponse[DeletedProject],
    response_model_exclude_none=True,
    summary="Delete a project",
)
async def delete_project(project_id: str, repository: ProjectRepository = Depends(get_project_repository)):
    project_sanitizer.validate_project_id(project_id)
    deleted_id = await repository.delete(project_id)
    return ApiResponse[DeletedProject](message="Project deleted successfully", data=DeletedProject(id=deleted_id))
