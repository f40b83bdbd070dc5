"""
# Project Sanitizer

Turns untrusted request payloads into typed, whitelisted project inputs.

All checks run before any storage call:

- The body must be a JSON object.
- Only fields declared on `ProjectCreate` / `ProjectUpdate` survive; anything
  else (including `id`, `_id`, `createdAt`, `updatedAt`) is dropped.
- `name` and `description` must be non-empty after trimming.
- `status` must be one of the enumerated values.
- Identifiers must be 24-character hexadecimal strings.

Every violation raises `ValidationFailure` carrying one message per
offending field in `details`.
"""

from typing import Any, List

from fastapi import Request
from pydantic import BaseModel, ValidationError

from renderapis.exceptions import ValidationFailure
from renderapis.managers.logging_manager import get_logger
from renderapis.models.project_models import REQUIRED_FIELD_MESSAGES, ProjectCreate, ProjectUpdate
from renderapis.utils.formatting import is_valid_object_id

logger = get_logger(prefix="[ProjectSanitizer]")

INVALID_ID_MESSAGE = "Invalid ID format"
INVALID_BODY_MESSAGE = "Request body must be a JSON object"


def _error_messages(exc: ValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "body"
        if err["type"] == "missing" and field in REQUIRED_FIELD_MESSAGES:
            messages.append(REQUIRED_FIELD_MESSAGES[field])
        elif err["type"] == "value_error" and "error" in err.get("ctx", {}):
            messages.append(str(err["ctx"]["error"]))
        else:
            messages.append(f"{field}: {err['msg']}")
    return messages


class ProjectSanitizer:
    """Validates and whitelists project payloads and identifiers."""

    def sanitize_create(self, payload: Any) -> ProjectCreate:
        return self._validate(ProjectCreate, payload)

    def sanitize_update(self, payload: Any) -> ProjectUpdate:
        return self._validate(ProjectUpdate, payload)

    def validate_project_id(self, value: Any) -> str:
        """Return `value` unchanged if it is a well-formed identifier."""
        if not is_valid_object_id(value):
            logger.debug("Rejected malformed project id %r", value)
            raise ValidationFailure(INVALID_ID_MESSAGE)
        return value

    def _validate(self, model: type, payload: Any) -> BaseModel:
        if not isinstance(payload, dict):
            raise ValidationFailure(INVALID_BODY_MESSAGE)
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            details = _error_messages(e)
            logger.info("Rejected %s payload: %s", model.__name__, details)
            raise ValidationFailure(details=details, cause=e) from e


async def read_json_body(request: Request) -> Any:
    """Decode the request body as JSON; malformed input is a validation failure."""
    body = await request.body()
    if not body:
        raise ValidationFailure(INVALID_BODY_MESSAGE)
    try:
        return await request.json()
    except ValueError as e:
        raise ValidationFailure("Invalid JSON in request body", cause=e) from e


project_sanitizer = ProjectSanitizer()
