"""
# Project Repository

Data access for the `projects` collection.

Each operation obtains the collection through the `DatabaseManager`, so a lost
connection surfaces as `StorageUnavailable` rather than a driver timeout.
Driver exceptions are translated with `classify_driver_error()` and never leak
to the route layer.

## Timestamps

- `create`: `createdAt == updatedAt == now`; `startDate` defaults to `now`.
- `update`: `updatedAt` moves strictly forward, at least one millisecond past
  its stored value, even when two writes land in the same millisecond.
  The write only applies if `updatedAt` is unchanged since it was read, so
  concurrent updates serialize instead of stamping the same value.
"""

import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from renderapis.database.manager import DatabaseManager
from renderapis.exceptions import (
    NotFound,
    ServiceError,
    UnknownError,
    ValidationFailure,
    classify_driver_error,
    error_summary,
)
from renderapis.managers.logging_manager import get_logger
from renderapis.models.project_models import Project, ProjectCreate, ProjectUpdate
from renderapis.utils.formatting import is_valid_object_id, to_utc_millis, utc_now
from renderapis.utils.logging_utils import log_error_with_context

logger = get_logger(prefix="[ProjectRepository]")

MIN_UPDATE_STEP = timedelta(milliseconds=1)
MAX_UPDATE_ATTEMPTS = 10


class ProjectRepository:
    """
    CRUD operations over stored projects.

    Args:
        db_manager: Manager owning the MongoDB connection.
        collection_name: Overrides the configured projects collection.
    """

    def __init__(self, db_manager: DatabaseManager, collection_name: Optional[str] = None):
        self.db_manager = db_manager
        self.collection_name = collection_name or db_manager.settings.PROJECTS_COLLECTION

    def _collection(self) -> AsyncIOMotorCollection:
        return self.db_manager.get_collection(self.collection_name)

    @staticmethod
    def _object_id(project_id: str) -> ObjectId:
        if not is_valid_object_id(project_id):
            raise ValidationFailure("Invalid ID format")
        return ObjectId(project_id)

    def _translate(self, operation: str, exc: Exception, **context: Any) -> ServiceError:
        error = classify_driver_error(exc)
        logger.error("%s failed: %s", operation, error_summary(error))
        if not isinstance(exc, ServiceError):
            log_error_with_context(exc, {"operation": f"project_{operation}", **context})
        return error

    async def create(self, fields: ProjectCreate) -> Project:
        """Insert a new project and return it as stored."""
        start_time = time.time()
        document = fields.to_document(utc_now())
        try:
            result = await self._collection().insert_one(document)
        except PyMongoError as e:
            raise self._translate("create", e) from e

        document["_id"] = result.inserted_id
        logger.info("Created project %s in %.3fs", result.inserted_id, time.time() - start_time)
        return Project.from_document(document)

    async def get_all(self) -> List[Project]:
        """All projects, newest first."""
        try:
            documents = await self._collection().find({}).sort("createdAt", DESCENDING).to_list(length=None)
        except PyMongoError as e:
            raise self._translate("get_all", e) from e

        logger.debug("Fetched %d projects", len(documents))
        return [Project.from_document(doc) for doc in documents]

    async def get_by_id(self, project_id: str) -> Project:
        """
        Fetch one project.

        Raises:
            ValidationFailure: If `project_id` is malformed.
            NotFound: If no project has this id.
        """
        object_id = self._object_id(project_id)
        try:
            document = await self._collection().find_one({"_id": object_id})
        except PyMongoError as e:
            raise self._translate("get_by_id", e, project_id=project_id) from e

        if document is None:
            raise NotFound()
        return Project.from_document(document)

    async def update(self, project_id: str, fields: ProjectUpdate) -> Project:
        """
        Apply the supplied fields and return the updated project.

        Fields sent as null that may be cleared are removed from the document.
        `updatedAt` is always refreshed, even for an empty update. The write is
        conditional on the `updatedAt` value it was computed from; a concurrent
        writer that got there first forces a re-read and another attempt.
        """
        object_id = self._object_id(project_id)
        to_set, to_unset = fields.to_update_operations()
        collection = self._collection()

        try:
            for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
                current = await collection.find_one({"_id": object_id}, {"updatedAt": 1})
                if current is None:
                    raise NotFound()

                previous = current.get("updatedAt")
                now = utc_now()
                if previous is not None:
                    now = max(now, to_utc_millis(previous) + MIN_UPDATE_STEP)

                operations: Dict[str, Any] = {"$set": {**to_set, "updatedAt": now}}
                if to_unset:
                    operations["$unset"] = {key: "" for key in to_unset}

                document = await collection.find_one_and_update(
                    {"_id": object_id, "updatedAt": previous},
                    operations,
                    return_document=ReturnDocument.AFTER,
                )
                if document is not None:
                    break
                logger.debug("Concurrent write on project %s, retrying (attempt %d)", project_id, attempt)
            else:
                logger.warning("Gave up updating project %s after %d attempts", project_id, MAX_UPDATE_ATTEMPTS)
                raise UnknownError("Concurrent update conflict")
        except PyMongoError as e:
            raise self._translate("update", e, project_id=project_id) from e

        logger.info("Updated project %s (%d set, %d cleared)", project_id, len(to_set), len(to_unset))
        return Project.from_document(document)

    async def delete(self, project_id: str) -> str:
        """Delete a project and return its id; a repeated delete raises `NotFound`."""
        object_id = self._object_id(project_id)
        try:
            document = await self._collection().find_one_and_delete({"_id": object_id})
        except PyMongoError as e:
            raise self._translate("delete", e, project_id=project_id) from e

        if document is None:
            raise NotFound()

        logger.info("Deleted project %s", project_id)
        return str(document["_id"])
