"""Models describing service and database health."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class ConnectionState(str, Enum):
    """Lifecycle states of the database link.

    Attributes:
        DISCONNECTED: No usable client; initial and final state.
        CONNECTING: A connect attempt is in flight.
        CONNECTED: The server answered a ping and data operations are allowed.
        ERROR: The last connect attempt failed.
        DISCONNECTING: Shutdown is closing the client.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTING = "disconnecting"


# Numeric readiness codes reported alongside the textual state
READY_STATES: Dict[ConnectionState, int] = {
    ConnectionState.DISCONNECTED: 0,
    ConnectionState.CONNECTED: 1,
    ConnectionState.CONNECTING: 2,
    ConnectionState.DISCONNECTING: 3,
    ConnectionState.ERROR: 0,
}

READY_STATE_TEXT: Dict[int, str] = {
    0: "disconnected",
    1: "connected",
    2: "connecting",
    3: "disconnecting",
}


class ConnectionStatus(BaseModel):
    """Point-in-time snapshot of the database connection."""

    is_connected: bool = Field(..., description="Whether data operations are currently allowed")
    state: ConnectionState = Field(..., description="Textual connection state")
    ready_state: int = Field(..., description="0 disconnected, 1 connected, 2 connecting, 3 disconnecting")
    ready_state_text: str = Field(..., description="Readiness code as text")
    host: Optional[str] = None
    port: Optional[int] = None
    name: Optional[str] = Field(None, description="Database name")
    connection_attempts: int = Field(0, description="Reconnection attempts since the last successful connect")
