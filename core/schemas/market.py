# Market data models shared by every component of the sync engine

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from core.trading.portfolio_models import PortfolioSnapshot

INVALID_INSTRUMENT_IDS = frozenset({"", "null", "undefined", "none"})


def normalize_instrument_id(value: Any) -> Optional[str]:
    """Integer tokens become strings; serialization artifacts become None."""
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    token = str(value).strip()
    if token.lower() in INVALID_INSTRUMENT_IDS:
        return None
    return token


class ConnectionStatus(str, Enum):
    """Tick stream connection status (observed, not owned, by the core)"""
    CONNECTING = "Connecting"
    ONLINE = "Online"
    ERROR = "Error"
    DISCONNECTED = "Disconnected"

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED)


class InstrumentMetadata(BaseModel):
    """Partial instrument description as returned by search, watchlist or ticks"""
    model_config = ConfigDict(frozen=True)

    instrument_id: str = Field(..., min_length=1)
    raw_symbol: str = ""
    display_name_hint: Optional[str] = None
    expiry_code: Optional[str] = None
    strike_price: Optional[float] = None
    exchange: Optional[str] = None

    @field_validator("instrument_id", mode="before")
    @classmethod
    def coerce_instrument_id(cls, v):
        # Same keying as ticks: 12345, 12345.0 and " 12345" are one instrument
        return normalize_instrument_id(v)


class WatchlistEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    instrument_id: str = Field(..., min_length=1)
    display_name: str = ""
    # Set on optimistic local adds until the backend acknowledges them
    pending_sync: bool = False


class Tick(BaseModel):
    """One price update for one instrument; a complete snapshot at that moment"""
    model_config = ConfigDict(frozen=True)

    instrument_id: str = Field(..., min_length=1)
    last_price: float
    change_abs: Optional[float] = None
    change_percent: Optional[float] = None
    exchange_timestamp: Optional[datetime] = None
    # Inline metadata some feeds attach; used for placeholder name upgrades
    metadata: Optional[InstrumentMetadata] = None


class WatchlistCard(BaseModel):
    """Display-ready watchlist row"""
    model_config = ConfigDict(frozen=True)

    instrument_id: str
    display_name: str
    last_price: Optional[float] = None
    change_abs: float = 0.0
    change_percent: float = 0.0
    protected: bool = False
    pending_sync: bool = False

    @property
    def is_positive(self) -> bool:
        return self.change_abs >= 0


class MarketSnapshot(BaseModel):
    """Immutable, render-ready view of one session's state"""
    model_config = ConfigDict(frozen=True)

    version: int = 0
    watchlist: Tuple[WatchlistEntry, ...] = Field(default_factory=tuple)
    ticks: Dict[str, Tick] = Field(default_factory=dict)
    portfolio: PortfolioSnapshot = Field(default_factory=PortfolioSnapshot)
    connection_status: ConnectionStatus = ConnectionStatus.CONNECTING
    protected_ids: Tuple[str, ...] = Field(default_factory=tuple)
    pending_removals: Tuple[str, ...] = Field(default_factory=tuple)
    dropped_ticks: int = 0

    def cards(self) -> Tuple[WatchlistCard, ...]:
        """Join watchlist entries with their latest ticks."""
        cards = []
        for entry in self.watchlist:
            tick = self.ticks.get(entry.instrument_id)
            cards.append(WatchlistCard(
                instrument_id=entry.instrument_id,
                display_name=entry.display_name,
                last_price=tick.last_price if tick else None,
                change_abs=(tick.change_abs or 0.0) if tick else 0.0,
                change_percent=(tick.change_percent or 0.0) if tick else 0.0,
                protected=entry.instrument_id in self.protected_ids,
                pending_sync=entry.pending_sync,
            ))
        return tuple(cards)
