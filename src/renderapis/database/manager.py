"""
# Database Management Module

This module provides the **MongoDB connection lifecycle** for the RenderAPIs service.
It implements a `DatabaseManager` class that owns the single **Motor** client used by
every request, tracks its state, and recovers from outages with a bounded retry policy.

## Architecture Overview

```
┌──────────────┐   app.state.db_manager   ┌──────────────────────────┐
│  FastAPI app │─────────────────────────▶│      DatabaseManager     │
│  (routes)    │   gate: is_connected      │  state / attempts / meta │
└──────────────┘                           └────────────┬─────────────┘
                                                        │ owns
                 ┌──────────────────────┐    queue     ┌▼─────────────────────┐
                 │ TopologyEventRelay   │─────────────▶│ event consumer task   │
                 │ (driver threads)     │              │ (updates state)       │
                 └──────────▲───────────┘              └───────────────────────┘
                            │ topology events
                 ┌──────────┴───────────┐
                 │ AsyncIOMotorClient   │  bounded pool (maxPoolSize)
                 └──────────────────────┘
```

## Key Features

### 1. Connection Lifecycle
- **connect()**: builds the client, pings the server, records host/port/name.
  Failures are captured into `state`; the method never raises.
- **disconnect()**: idempotent; always ends in `disconnected`; close errors are logged.

### 2. Reconnection Policy
- **Fixed delay, bounded attempts**: `MONGODB_RECONNECT_DELAY_SECONDS` (5s) between
  attempts, at most `MONGODB_RECONNECT_MAX_ATTEMPTS` (5). This is a deliberate linear
  policy, not exponential backoff.
- **Outside development**: a failed connect schedules retries in production and test.
  Development keeps running without a database; project routes answer 503.
  A link lost after connecting is retried in production only.
- **Single pending attempt**: at most one reconnection task exists at a time.

### 3. Driver Events
PyMongo reports topology changes from its monitor threads. `TopologyEventRelay`
forwards "writable server lost/regained" transitions onto an `asyncio.Queue`; one
consumer task on the event loop applies them to the connection state. Only this
manager mutates state; everything else reads `get_status()` / `is_connected`.

### 4. Health & Statistics
- **is_healthy()**: pull-based `ping`, any error counts as unhealthy.
- **get_stats()**: `dbStats` summary or an `{"error": ...}` descriptor.

## Usage

```python
manager = DatabaseManager(settings)
await manager.connect()
if manager.is_connected:
    projects = manager.get_collection("projects")
await manager.disconnect()
```

The manager is constructed by `renderapis.main.create_app()` and stored on
`app.state.db_manager`; there is no module-level instance.
"""

import asyncio
import re
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, monitoring

from renderapis.config import Settings, settings as default_settings
from renderapis.exceptions import StorageUnavailable
from renderapis.managers.logging_manager import get_logger
from renderapis.models.system_models import READY_STATE_TEXT, READY_STATES, ConnectionState, ConnectionStatus

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

CREDENTIALS_PATTERN = re.compile(r"//[^/@]*@")


class ConnectionEvent(str, Enum):
    """Driver-reported availability transitions."""

    LOST = "lost"
    RESTORED = "restored"


def redact_url(url: str) -> str:
    """Hide credentials in a MongoDB URL before logging it."""
    return CREDENTIALS_PATTERN.sub("//***:***@", url)


class TopologyEventRelay(monitoring.TopologyListener):
    """
    Forward writable-server transitions from PyMongo monitor threads to the event loop.

    Each relay is bound to one client generation so that late events from a client
    that has since been replaced are recognisable and ignored.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, generation: int):
        self._loop = loop
        self._queue = queue
        self._generation = generation

    def opened(self, event: monitoring.TopologyOpenedEvent) -> None:
        pass

    def description_changed(self, event: monitoring.TopologyDescriptionChangedEvent) -> None:
        had_writable = event.previous_description.has_writable_server()
        has_writable = event.new_description.has_writable_server()
        if had_writable == has_writable:
            return
        connection_event = ConnectionEvent.RESTORED if has_writable else ConnectionEvent.LOST
        self.publish(connection_event)

    def closed(self, event: monitoring.TopologyClosedEvent) -> None:
        pass

    def publish(self, connection_event: ConnectionEvent) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, (self._generation, connection_event))


class DatabaseManager:
    """
    Owns the MongoDB client, its connection state and the reconnection policy.

    **Lifecycle:**
    1. **Instantiation**: no I/O; state is `disconnected`.
    2. **connect()**: `disconnected → connecting → {connected | error}`.
    3. **Runtime**: driver events move `connected ↔ disconnected`; in production a lost
       link schedules bounded reconnection attempts.
    4. **disconnect()**: `any → disconnecting → disconnected`.

    Attributes:
        client (`Optional[AsyncIOMotorClient]`): Active Motor client, `None` when disconnected.
        database (`Optional[AsyncIOMotorDatabase]`): Selected database.
        state (`ConnectionState`): Current textual state.
        connection_attempts (`int`): Reconnection attempts since the last successful connect.
        host, port, name: Connection metadata, populated once connected.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client_factory: Callable[..., AsyncIOMotorClient] = AsyncIOMotorClient,
    ):
        self.settings = config or default_settings
        self._client_factory = client_factory

        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.state = ConnectionState.DISCONNECTED
        self.connection_attempts = 0
        self.max_retries = self.settings.MONGODB_RECONNECT_MAX_ATTEMPTS
        self.retry_delay = self.settings.MONGODB_RECONNECT_DELAY_SECONDS

        self.host: Optional[str] = None
        self.port: Optional[int] = None
        self.name: Optional[str] = None

        self._generation = 0
        self._reconnect_task: Optional[asyncio.Task] = None
        self._events: Optional[asyncio.Queue] = None
        self._event_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    async def connect(self) -> bool:
        """
        Establish the MongoDB connection.

        Builds a Motor client with the configured pool size and timeouts, then pings
        the server. On success the state becomes `connected`, the attempt counter
        resets and host/port/name are recorded. On failure the client is discarded
        and the state becomes `error`; production and test modes schedule a
        reconnection, development mode keeps serving without a database.

        Returns:
            `bool`: `True` when connected after the call.

        Note:
            All failures are captured into `state` and logged; this method never raises.
        """
        if self.is_connected:
            return True

        start_time = time.time()
        self.state = ConnectionState.CONNECTING
        db_logger.info("Connecting to MongoDB at %s", redact_url(self.settings.MONGODB_URL))
        self._ensure_event_consumer()

        try:
            self._close_client()
            self._generation += 1
            relay = TopologyEventRelay(asyncio.get_running_loop(), self._events, self._generation)
            self.client = self._client_factory(
                self.settings.MONGODB_URL,
                maxPoolSize=self.settings.MONGODB_MAX_POOL_SIZE,
                serverSelectionTimeoutMS=self.settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                socketTimeoutMS=self.settings.MONGODB_SOCKET_TIMEOUT,
                tz_aware=True,
                event_listeners=[relay],
            )
            await self.client.admin.command("ping")
            self.database = self.client.get_default_database(self.settings.MONGODB_DATABASE)
        except Exception as e:
            duration = time.time() - start_time
            self.state = ConnectionState.ERROR
            self._close_client()
            perf_logger.warning("MongoDB connection attempt failed after %.3fs", duration)
            db_logger.error("MongoDB connection failed: %s", e)

            if self.settings.is_development:
                db_logger.warning("Development mode: server will continue running without database functionality")
            else:
                self.schedule_reconnection()
            return False

        self.state = ConnectionState.CONNECTED
        self.connection_attempts = 0
        self.host, self.port = self._primary_address()
        self.name = self.database.name

        perf_logger.info("MongoDB connection established in %.3fs", time.time() - start_time)
        db_logger.info("Connected to MongoDB database '%s' on %s:%s", self.name, self.host, self.port)
        return True

    def schedule_reconnection(self) -> bool:
        """
        Schedule one deferred reconnection attempt.

        Gives up permanently once `connection_attempts` has reached the configured
        maximum. Otherwise increments the counter and creates a task that waits the
        fixed delay and calls `connect()`. At most one attempt is pending at a time.

        Returns:
            `bool`: `True` if an attempt was scheduled.
        """
        if self._reconnect_task is not None and not self._reconnect_task.done():
            db_logger.debug("Reconnection already pending; not scheduling another")
            return False

        if self.connection_attempts >= self.max_retries:
            db_logger.error(
                "Max reconnection attempts (%d) reached; MongoDB will stay disconnected", self.max_retries
            )
            return False

        self.connection_attempts += 1
        db_logger.info(
            "Scheduling reconnection attempt %d/%d in %.1fs",
            self.connection_attempts,
            self.max_retries,
            self.retry_delay,
        )
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_after_delay())
        return True

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self.retry_delay)
        # Clear the handle first so a failed attempt can schedule the next one
        self._reconnect_task = None
        await self.connect()

    async def disconnect(self) -> None:
        """
        Close the MongoDB connection.

        Cancels any pending reconnection and the driver-event consumer, then closes
        the client. Safe to call in any state and more than once; the state always
        ends as `disconnected`. Errors while closing are logged, not raised.
        """
        start_time = time.time()
        db_logger.info("Starting MongoDB disconnection process")
        self.state = ConnectionState.DISCONNECTING

        await self._cancel_task(self._reconnect_task)
        self._reconnect_task = None
        await self._cancel_task(self._event_task)
        self._event_task = None

        if self.client is None:
            db_logger.warning("Disconnect called but no active MongoDB connection found")
        else:
            self._close_client()
            db_logger.info("MongoDB connection closed gracefully")

        self.state = ConnectionState.DISCONNECTED
        self.host = self.port = self.name = None
        perf_logger.info("MongoDB disconnection completed in %.3fs", time.time() - start_time)

    def get_status(self) -> ConnectionStatus:
        """Snapshot of the connection state; no side effects."""
        ready_state = READY_STATES[self.state]
        return ConnectionStatus(
            is_connected=self.is_connected,
            state=self.state,
            ready_state=ready_state,
            ready_state_text=READY_STATE_TEXT.get(ready_state, "unknown"),
            host=self.host,
            port=self.port,
            name=self.name,
            connection_attempts=self.connection_attempts,
        )

    async def is_healthy(self) -> bool:
        """
        Verify the connection with a lightweight `ping`.

        Returns `False` immediately when not connected; any error raised by the ping
        is logged and reported as unhealthy.
        """
        if not self.is_connected or self.client is None:
            health_logger.debug("Health check skipped: database not connected")
            return False

        start_time = time.time()
        try:
            await self.client.admin.command("ping")
        except Exception as e:
            health_logger.error("Database health check failed after %.3fs: %s", time.time() - start_time, e)
            return False

        perf_logger.debug("Database health check completed in %.3fs", time.time() - start_time)
        return True

    async def get_stats(self) -> Dict[str, Any]:
        """
        Storage-level statistics for the connected database.

        Returns:
            `dict`: collection/document counts and data/storage/index sizes, or
            `{"error": message}` when not connected or when `dbStats` fails.
        """
        if not self.is_connected or self.database is None:
            return {"error": "Database not connected"}

        try:
            stats = await self.database.command("dbStats")
        except Exception as e:
            health_logger.warning("Failed to retrieve database stats: %s", e)
            return {"error": str(e)}

        return {
            "collections": stats.get("collections", 0),
            "documents": stats.get("objects", 0),
            "data_size": stats.get("dataSize", 0),
            "storage_size": stats.get("storageSize", 0),
            "indexes": stats.get("indexes", 0),
            "index_size": stats.get("indexSize", 0),
        }

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Retrieve a collection from the connected database.

        Raises:
            StorageUnavailable: If the database is not connected.
        """
        if not self.is_connected or self.database is None:
            db_logger.error("Attempted to get collection '%s' without database connection", collection_name)
            raise StorageUnavailable()
        return self.database[collection_name]

    async def create_indexes(self) -> None:
        """Create the indexes used by project listing; failures are logged only."""
        if not self.is_connected or self.database is None:
            db_logger.warning("Skipping index creation: database not connected")
            return

        collection = self.database[self.settings.PROJECTS_COLLECTION]
        try:
            await collection.create_index([("createdAt", DESCENDING)], name="createdAt_desc")
            await collection.create_index([("status", ASCENDING)], name="status_asc")
            db_logger.info("Indexes verified for collection '%s'", self.settings.PROJECTS_COLLECTION)
        except Exception as e:
            db_logger.error("Failed to create indexes for '%s': %s", self.settings.PROJECTS_COLLECTION, e)

    # --- Driver event handling ---

    def _ensure_event_consumer(self) -> None:
        if self._event_task is not None and not self._event_task.done():
            return
        self._events = asyncio.Queue()
        self._event_task = asyncio.get_running_loop().create_task(self._consume_connection_events())

    async def _consume_connection_events(self) -> None:
        while True:
            generation, event = await self._events.get()
            self.handle_connection_event(generation, event)

    def handle_connection_event(self, generation: int, event: ConnectionEvent) -> None:
        """
        Apply a driver-reported transition to the connection state.

        Events from a replaced client are ignored. A lost link while connected moves
        to `disconnected` and, in production, schedules a reconnection. A restored
        link while disconnected or in error returns to `connected`.
        """
        if generation != self._generation:
            return

        if event is ConnectionEvent.LOST and self.state is ConnectionState.CONNECTED:
            self.state = ConnectionState.DISCONNECTED
            db_logger.warning("MongoDB disconnected")
            if self.settings.is_production:
                self.schedule_reconnection()
        elif (
            event is ConnectionEvent.RESTORED
            and self.state in (ConnectionState.DISCONNECTED, ConnectionState.ERROR)
            and self.client is not None
        ):
            self.state = ConnectionState.CONNECTED
            self.connection_attempts = 0
            db_logger.info("MongoDB reconnected")

    # --- Helpers ---

    def _primary_address(self) -> Tuple[Optional[str], Optional[int]]:
        nodes = sorted(self.client.nodes or []) if self.client is not None else []
        if not nodes:
            return None, None
        host, port = nodes[0]
        return host, port

    def _close_client(self) -> None:
        if self.client is None:
            return
        try:
            self.client.close()
        except Exception as e:
            db_logger.error("Error closing MongoDB connection: %s", e)
        finally:
            self.client = None
            self.database = None

    @staticmethod
    async def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
