"""
# Database Package

The `renderapis.database` package provides the **persistence connection layer**.
It is built on **Motor** (async MongoDB driver) and exposes a single
`DatabaseManager` per application.

## Usage

```python
from renderapis.database import DatabaseManager

manager = DatabaseManager(settings)
await manager.connect()
projects = manager.get_collection("projects")
await manager.disconnect()
```

Unlike a module-level singleton, the manager is created by the application
factory and handed to request handlers through `app.state.db_manager`, so tests
can substitute a manager with a fake client.
"""

from renderapis.database.manager import ConnectionEvent, DatabaseManager, TopologyEventRelay, redact_url

__all__ = ["ConnectionEvent", "DatabaseManager", "TopologyEventRelay", "redact_url"]
