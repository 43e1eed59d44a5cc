# Market Feed Service Models
from pydantic import BaseModel
from typing import Optional
from datetime import datetime, timezone

from core.config.settings import ReconnectionSettings
from core.schemas.market import ConnectionStatus


class ConnectionStats(BaseModel):
    """WebSocket connection statistics"""
    connection_attempts: int = 0
    successful_connections: int = 0
    disconnections: int = 0
    errors: int = 0
    messages_received: int = 0
    last_connection_time: Optional[datetime] = None
    last_disconnection_time: Optional[datetime] = None
    current_status: ConnectionStatus = ConnectionStatus.DISCONNECTED


class MarketDataMetrics(BaseModel):
    """Tick processing metrics"""
    ticks_processed: int = 0
    ticks_dropped: int = 0
    instruments_seen: int = 0
    last_tick_time: Optional[datetime] = None

    def record_tick(self, instruments_seen: int) -> None:
        self.ticks_processed += 1
        self.instruments_seen = instruments_seen
        self.last_tick_time = datetime.now(timezone.utc)

    def record_dropped(self) -> None:
        self.ticks_dropped += 1


class ReconnectionConfig(BaseModel):
    """Configuration for reconnection behavior"""
    enabled: bool = True
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: ReconnectionSettings) -> "ReconnectionConfig":
        return cls(
            enabled=settings.enabled,
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay_seconds,
            max_delay=settings.max_delay_seconds,
            backoff_multiplier=settings.backoff_multiplier,
        )

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff delay before reconnection ``attempt`` (1-based)."""
        return min(self.base_delay * (self.backoff_multiplier ** (attempt - 1)), self.max_delay)
