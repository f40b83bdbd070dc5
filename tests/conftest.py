import copy
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo import ReturnDocument

from renderapis.config import Settings
from renderapis.database.manager import DatabaseManager
from renderapis.main import create_app
from renderapis.models.system_models import ConnectionState


def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in query.items())


def _project(document: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not projection:
        return copy.deepcopy(document)
    keys = {"_id", *[key for key, include in projection.items() if include]}
    return {key: copy.deepcopy(value) for key, value in document.items() if key in keys}


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents

    def sort(self, key: str, direction: int) -> "FakeCursor":
        self._documents.sort(key=lambda doc: doc[key], reverse=direction < 0)
        return self

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._documents if length is None else self._documents[:length]


class FakeCollection:
    """In-memory stand-in for the Motor collection methods the repository uses."""

    def __init__(self, name: str = "projects"):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.indexes: List[Any] = []

    async def insert_one(self, document: Dict[str, Any]):
        stored = copy.deepcopy(document)
        stored.setdefault("_id", ObjectId())
        self.documents.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    def find(self, query: Dict[str, Any]) -> FakeCursor:
        return FakeCursor([copy.deepcopy(doc) for doc in self.documents if _matches(doc, query)])

    async def find_one(self, query: Dict[str, Any], projection: Optional[Dict[str, Any]] = None):
        for doc in self.documents:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        return_document: bool = ReturnDocument.BEFORE,
    ):
        for doc in self.documents:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                doc.update(copy.deepcopy(update.get("$set", {})))
                for key in update.get("$unset", {}):
                    doc.pop(key, None)
                return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before
        return None

    async def find_one_and_delete(self, query: Dict[str, Any]):
        for index, doc in enumerate(self.documents):
            if _matches(doc, query):
                return self.documents.pop(index)
        return None

    async def create_index(self, keys, name: Optional[str] = None):
        self.indexes.append((keys, name))
        return name


class FakeDatabase(dict):
    def __init__(self, name: str = "renderapis_test"):
        super().__init__()
        self.name = name

    def __missing__(self, key: str) -> FakeCollection:
        collection = FakeCollection(key)
        self[key] = collection
        return collection


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        ENVIRONMENT="test",
        MONGODB_URL="mongodb://localhost:27017/renderapis_test",
        MONGODB_DATABASE="renderapis_test",
        MONGODB_RECONNECT_DELAY_SECONDS=0,
        METRICS_ENABLED=False,
        STATIC_DIR=None,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def fake_database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def projects_collection(fake_database: FakeDatabase) -> FakeCollection:
    return fake_database["projects"]


@pytest.fixture
def connected_manager(test_settings: Settings, fake_database: FakeDatabase) -> DatabaseManager:
    manager = DatabaseManager(test_settings)
    manager.database = fake_database
    manager.state = ConnectionState.CONNECTED
    manager.host, manager.port, manager.name = "localhost", 27017, fake_database.name
    return manager


@pytest.fixture
def disconnected_manager(test_settings: Settings) -> DatabaseManager:
    return DatabaseManager(test_settings)


@pytest.fixture
def app(test_settings: Settings, connected_manager: DatabaseManager):
    return create_app(test_settings, db_manager=connected_manager)


@pytest.fixture
def offline_app(test_settings: Settings, disconnected_manager: DatabaseManager):
    return create_app(test_settings, db_manager=disconnected_manager)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
async def offline_client(offline_app):
    async with AsyncClient(transport=ASGITransport(app=offline_app), base_url="http://testserver") as ac:
        yield ac
