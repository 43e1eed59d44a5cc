# Session events: the only inputs the sync coordinator accepts.
# Every source (stream, baseline fetch, user command, persistence result)
# is normalized into one of these before reaching the core.

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from core.schemas.market import ConnectionStatus, InstrumentMetadata, WatchlistEntry
from core.trading.portfolio_models import Position


class EventType(str, Enum):
    TICK_RECEIVED = "tick_received"
    BASELINE_LOADED = "baseline_loaded"
    ENTRY_ADDED = "entry_added"
    ENTRY_REMOVED = "entry_removed"
    CONNECTION_STATUS_CHANGED = "connection_status_changed"
    PERSISTENCE_COMPLETED = "persistence_completed"


class PersistenceAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


class SessionEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TickReceived(SessionEventBase):
    """Raw inbound stream message, parsed by the tick store"""
    kind: Literal[EventType.TICK_RECEIVED] = EventType.TICK_RECEIVED
    raw: Any
    # None for ticks injected outside a live connection (replays, tests)
    connection_id: Optional[int] = None


class BaselineLoaded(SessionEventBase):
    kind: Literal[EventType.BASELINE_LOADED] = EventType.BASELINE_LOADED
    watchlist: List[WatchlistEntry] = Field(default_factory=list)
    positions: List[Position] = Field(default_factory=list)
    # Order in which the fetch was started; None for baselines built outside a session
    sequence: Optional[int] = None


class EntryAdded(SessionEventBase):
    kind: Literal[EventType.ENTRY_ADDED] = EventType.ENTRY_ADDED
    metadata: InstrumentMetadata


class EntryRemoved(SessionEventBase):
    kind: Literal[EventType.ENTRY_REMOVED] = EventType.ENTRY_REMOVED
    instrument_id: str


class ConnectionStatusChanged(SessionEventBase):
    kind: Literal[EventType.CONNECTION_STATUS_CHANGED] = EventType.CONNECTION_STATUS_CHANGED
    status: ConnectionStatus
    connection_id: int
    reason: Optional[str] = None


class PersistenceCompleted(SessionEventBase):
    kind: Literal[EventType.PERSISTENCE_COMPLETED] = EventType.PERSISTENCE_COMPLETED
    instrument_id: str
    action: PersistenceAction
    success: bool
    error: Optional[str] = None


SessionEvent = Annotated[
    Union[
        TickReceived,
        BaselineLoaded,
        EntryAdded,
        EntryRemoved,
        ConnectionStatusChanged,
        PersistenceCompleted,
    ],
    Field(discriminator="kind"),
]
