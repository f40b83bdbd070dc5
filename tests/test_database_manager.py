import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from renderapis.config import Settings
from renderapis.database.manager import ConnectionEvent, DatabaseManager, TopologyEventRelay, redact_url
from renderapis.exceptions import StorageUnavailable
from renderapis.models.system_models import ConnectionState


def make_client(ping_error=None):
    client = MagicMock()
    if ping_error is not None:
        client.admin.command = AsyncMock(side_effect=ping_error)
    else:
        client.admin.command = AsyncMock(return_value={"ok": 1.0})
    database = MagicMock()
    database.name = "renderapis_test"
    client.get_default_database.return_value = database
    client.nodes = frozenset({("db.internal", 27017)})
    return client


@pytest.fixture
def production_settings(test_settings: Settings) -> Settings:
    return test_settings.model_copy(update={"ENVIRONMENT": "production"})


async def drain_reconnections(manager: DatabaseManager, limit: int = 20) -> None:
    for _ in range(limit):
        task = manager._reconnect_task
        if task is None:
            return
        await task
    raise AssertionError("reconnection did not settle")


@pytest.mark.asyncio
async def test_connect_success_records_metadata(test_settings):
    client = make_client()
    factory = MagicMock(return_value=client)
    manager = DatabaseManager(test_settings, client_factory=factory)

    assert await manager.connect() is True

    assert manager.state is ConnectionState.CONNECTED
    assert manager.connection_attempts == 0
    assert (manager.host, manager.port, manager.name) == ("db.internal", 27017, "renderapis_test")

    args, kwargs = factory.call_args
    assert args[0] == test_settings.MONGODB_URL
    assert kwargs["maxPoolSize"] == 10
    assert kwargs["serverSelectionTimeoutMS"] == 5000
    assert kwargs["socketTimeoutMS"] == 45000
    assert kwargs["tz_aware"] is True
    assert isinstance(kwargs["event_listeners"][0], TopologyEventRelay)

    await manager.disconnect()


@pytest.mark.asyncio
async def test_connect_when_already_connected_is_noop(test_settings):
    factory = MagicMock(return_value=make_client())
    manager = DatabaseManager(test_settings, client_factory=factory)
    await manager.connect()

    assert await manager.connect() is True
    assert factory.call_count == 1

    await manager.disconnect()


@pytest.mark.asyncio
async def test_connect_failure_in_development_does_not_retry(test_settings):
    client = make_client(ping_error=ServerSelectionTimeoutError("no servers available"))
    development = test_settings.model_copy(update={"ENVIRONMENT": "development"})
    manager = DatabaseManager(development, client_factory=MagicMock(return_value=client))

    assert await manager.connect() is False

    assert manager.state is ConnectionState.ERROR
    assert manager.client is None
    assert manager._reconnect_task is None
    client.close.assert_called_once()

    await manager.disconnect()


@pytest.mark.asyncio
async def test_connect_failure_in_test_mode_schedules_retry(test_settings):
    client = make_client(ping_error=ServerSelectionTimeoutError("no servers available"))
    settings = test_settings.model_copy(update={"MONGODB_RECONNECT_DELAY_SECONDS": 60})
    manager = DatabaseManager(settings, client_factory=MagicMock(return_value=client))

    assert await manager.connect() is False

    assert manager.state is ConnectionState.ERROR
    assert manager._reconnect_task is not None
    assert manager.connection_attempts == 1

    await manager.disconnect()
    assert manager._reconnect_task is None


@pytest.mark.asyncio
async def test_six_consecutive_failures_stop_retrying(production_settings):
    client = make_client(ping_error=ServerSelectionTimeoutError("no servers available"))
    factory = MagicMock(return_value=client)
    manager = DatabaseManager(production_settings, client_factory=factory)

    assert await manager.connect() is False
    await drain_reconnections(manager)

    # Initial attempt plus five scheduled retries, never a seventh
    assert factory.call_count == 6
    assert manager.connection_attempts == 5
    assert manager.state is ConnectionState.ERROR
    assert manager.schedule_reconnection() is False
    assert factory.call_count == 6

    await manager.disconnect()


@pytest.mark.asyncio
async def test_reconnection_succeeds_and_resets_attempts(production_settings):
    failing = make_client(ping_error=ServerSelectionTimeoutError("no servers available"))
    healthy = make_client()
    factory = MagicMock(side_effect=[failing, failing, healthy])
    manager = DatabaseManager(production_settings, client_factory=factory)

    await manager.connect()
    await drain_reconnections(manager)

    assert factory.call_count == 3
    assert manager.state is ConnectionState.CONNECTED
    assert manager.connection_attempts == 0

    await manager.disconnect()


@pytest.mark.asyncio
async def test_only_one_reconnection_pending(production_settings):
    manager = DatabaseManager(production_settings.model_copy(update={"MONGODB_RECONNECT_DELAY_SECONDS": 60}))

    assert manager.schedule_reconnection() is True
    assert manager.schedule_reconnection() is False
    assert manager.connection_attempts == 1

    await manager.disconnect()
    assert manager._reconnect_task is None


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(test_settings):
    client = make_client()
    manager = DatabaseManager(test_settings, client_factory=MagicMock(return_value=client))
    await manager.connect()

    await manager.disconnect()
    await manager.disconnect()

    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.client is None
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_disconnect_clears_connection_metadata(test_settings):
    manager = DatabaseManager(test_settings, client_factory=MagicMock(return_value=make_client()))
    await manager.connect()
    assert manager.get_status().host == "db.internal"

    await manager.disconnect()

    status = manager.get_status()
    assert status.is_connected is False
    assert (status.host, status.port, status.name) == (None, None, None)


@pytest.mark.asyncio
async def test_disconnect_logs_close_errors(test_settings):
    client = make_client()
    client.close.side_effect = RuntimeError("socket already closed")
    manager = DatabaseManager(test_settings, client_factory=MagicMock(return_value=client))
    await manager.connect()

    await manager.disconnect()

    assert manager.state is ConnectionState.DISCONNECTED


def test_get_status_snapshot(connected_manager):
    status = connected_manager.get_status()

    assert status.is_connected is True
    assert status.state is ConnectionState.CONNECTED
    assert status.ready_state == 1
    assert status.ready_state_text == "connected"
    assert status.host == "localhost"
    assert status.connection_attempts == 0


def test_get_status_when_disconnected(disconnected_manager):
    status = disconnected_manager.get_status()

    assert status.is_connected is False
    assert status.ready_state == 0
    assert status.host is None


@pytest.mark.asyncio
async def test_is_healthy(connected_manager, disconnected_manager):
    assert await disconnected_manager.is_healthy() is False

    connected_manager.client = make_client()
    assert await connected_manager.is_healthy() is True

    connected_manager.client.admin.command.side_effect = ServerSelectionTimeoutError("timed out")
    assert await connected_manager.is_healthy() is False


@pytest.mark.asyncio
async def test_get_stats(connected_manager, disconnected_manager):
    assert "error" in await disconnected_manager.get_stats()

    connected_manager.database = MagicMock()
    connected_manager.database.command = AsyncMock(
        return_value={
            "collections": 1,
            "objects": 3,
            "dataSize": 2048,
            "storageSize": 4096,
            "indexes": 3,
            "indexSize": 1024,
        }
    )
    stats = await connected_manager.get_stats()
    assert stats == {
        "collections": 1,
        "documents": 3,
        "data_size": 2048,
        "storage_size": 4096,
        "indexes": 3,
        "index_size": 1024,
    }

    connected_manager.database.command.side_effect = OperationFailure("not authorized")
    assert await connected_manager.get_stats() == {"error": "not authorized"}


def test_get_collection_requires_connection(connected_manager, disconnected_manager, projects_collection):
    assert connected_manager.get_collection("projects") is projects_collection
    with pytest.raises(StorageUnavailable):
        disconnected_manager.get_collection("projects")


@pytest.mark.asyncio
async def test_create_indexes(connected_manager, projects_collection):
    await connected_manager.create_indexes()

    names = [name for _, name in projects_collection.indexes]
    assert names == ["createdAt_desc", "status_asc"]


def test_connection_events_update_state(connected_manager):
    generation = connected_manager._generation

    connected_manager.handle_connection_event(generation, ConnectionEvent.LOST)
    assert connected_manager.state is ConnectionState.DISCONNECTED
    assert connected_manager._reconnect_task is None

    connected_manager.client = MagicMock()
    connected_manager.handle_connection_event(generation, ConnectionEvent.RESTORED)
    assert connected_manager.state is ConnectionState.CONNECTED


def test_stale_connection_events_are_ignored(connected_manager):
    connected_manager.handle_connection_event(connected_manager._generation - 1, ConnectionEvent.LOST)
    assert connected_manager.state is ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_lost_connection_schedules_reconnection_in_production(production_settings, fake_database):
    manager = DatabaseManager(production_settings.model_copy(update={"MONGODB_RECONNECT_DELAY_SECONDS": 60}))
    manager.database = fake_database
    manager.state = ConnectionState.CONNECTED

    manager.handle_connection_event(manager._generation, ConnectionEvent.LOST)

    assert manager.state is ConnectionState.DISCONNECTED
    assert manager._reconnect_task is not None
    assert manager.connection_attempts == 1

    await manager.disconnect()


@pytest.mark.asyncio
async def test_relay_forwards_writable_transitions():
    queue = asyncio.Queue()
    relay = TopologyEventRelay(asyncio.get_running_loop(), queue, generation=3)

    def description(writable):
        return MagicMock(has_writable_server=MagicMock(return_value=writable))

    def change(before, after):
        return SimpleNamespace(previous_description=description(before), new_description=description(after))

    relay.description_changed(change(True, True))
    relay.description_changed(change(True, False))

    assert await asyncio.wait_for(queue.get(), timeout=1) == (3, ConnectionEvent.LOST)
    assert queue.empty()


def test_redact_url_hides_credentials():
    assert redact_url("mongodb://user:secret@db:27017/app") == "mongodb://***:***@db:27017/app"
    assert redact_url("mongodb://localhost:27017/app") == "mongodb://localhost:27017/app"
