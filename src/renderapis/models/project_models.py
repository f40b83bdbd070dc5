"""
# Project Models

Pydantic models for the single persisted resource of the service.

## Wire Format

Projects travel as camelCase JSON (`startDate`, `liveUrl`, `createdAt`, ...) and
are stored in MongoDB with the same keys. Python code uses snake_case attributes;
the `to_camel` alias generator bridges the two.

## Field Whitelisting

`ProjectCreate` and `ProjectUpdate` are the only shapes accepted from callers.
Both ignore unknown keys during deserialization, so system-managed fields (`id`,
`_id`, `createdAt`, `updatedAt`) and anything injected alongside them never reach
the repository.

```python
ProjectCreate.model_validate({"name": "P1", "description": "D1", "hacked": "x"})
# -> ProjectCreate(name='P1', description='D1', technologies=[], status='planning', ...)
```
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from renderapis.utils.formatting import to_utc_millis

REQUIRED_FIELD_MESSAGES: Dict[str, str] = {
    "name": "Project name is required",
    "description": "Project description is required",
}

# Fields a caller may clear on update by sending an explicit null
CLEARABLE_FIELDS = frozenset({"endDate", "repository", "liveUrl"})


class ProjectStatus(str, Enum):
    """Lifecycle status of a project."""

    PLANNING = "planning"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise ValueError(REQUIRED_FIELD_MESSAGES[field_name])
    return value.strip()


class ProjectCreate(BaseModel):
    """Fields accepted when creating a project."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        extra="ignore",
        str_strip_whitespace=True,
        use_enum_values=True,
    )

    name: str = Field(..., description="Project name")
    description: str = Field(..., description="Project description")
    technologies: List[str] = Field(default_factory=list, description="Technologies used")
    status: ProjectStatus = Field(ProjectStatus.PLANNING, description="Project status")
    start_date: Optional[datetime] = Field(None, description="Start date (defaults to creation time)")
    end_date: Optional[datetime] = Field(None, description="End date")
    repository: Optional[str] = Field(None, description="Source repository URL")
    live_url: Optional[str] = Field(None, description="Live deployment URL")

    @field_validator("name", "description", mode="before")
    @classmethod
    def text_required(cls, v: Any, info: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError(REQUIRED_FIELD_MESSAGES[info.field_name])
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_millis(v) if v is not None else v

    def to_document(self, now: datetime) -> Dict[str, Any]:
        """Storage document for a new project created at `now`."""
        document = self.model_dump(by_alias=True, exclude_none=True)
        document.setdefault("startDate", now)
        document["createdAt"] = now
        document["updatedAt"] = now
        return document


class ProjectUpdate(BaseModel):
    """
    Fields accepted when updating a project.

    Only keys present in the payload are applied. `endDate`, `repository` and
    `liveUrl` may be sent as null to clear them; null is rejected elsewhere.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        extra="ignore",
        str_strip_whitespace=True,
        use_enum_values=True,
    )

    name: Optional[str] = None
    description: Optional[str] = None
    technologies: Optional[List[str]] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    repository: Optional[str] = None
    live_url: Optional[str] = None

    @field_validator("name", "description")
    @classmethod
    def text_not_blank(cls, v: Optional[str], info: Any) -> str:
        return _require_text(v, info.field_name)

    @field_validator("technologies", "status", "start_date")
    @classmethod
    def not_null(cls, v: Any, info: Any) -> Any:
        # Validators only run for keys the caller sent, so None here is an explicit null
        if v is None:
            raise ValueError(f"{to_camel(info.field_name)} cannot be null")
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_millis(v) if v is not None else v

    def to_update_operations(self) -> Tuple[Dict[str, Any], List[str]]:
        """
        Split the supplied fields into `$set` values and `$unset` keys.

        Returns:
            Tuple of (fields to set, camelCase field names to remove).
        """
        supplied = self.model_dump(by_alias=True, exclude_unset=True)
        to_set = {key: value for key, value in supplied.items() if value is not None}
        to_unset = [key for key, value in supplied.items() if value is None and key in CLEARABLE_FIELDS]
        return to_set, to_unset


class Project(BaseModel):
    """A stored project as returned to callers."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    id: str
    name: str
    description: str
    technologies: List[str] = Field(default_factory=list)
    status: ProjectStatus = ProjectStatus.PLANNING
    start_date: datetime
    end_date: Optional[datetime] = None
    repository: Optional[str] = None
    live_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Project":
        """Build a project from a MongoDB document, exposing `_id` as `id`."""
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    """Standard success envelope: `{success, message?, data?, count?}`."""

    success: bool = True
    message: Optional[str] = None
    data: Optional[DataT] = None
    count: Optional[int] = None


class DeletedProject(BaseModel):
    id: str
