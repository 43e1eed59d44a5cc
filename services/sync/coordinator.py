from typing import Callable, Dict, Optional

from core.logging import get_market_data_logger_safe
from core.schemas.events import (
    BaselineLoaded,
    ConnectionStatusChanged,
    EntryAdded,
    EntryRemoved,
    EventType,
    PersistenceCompleted,
    SessionEvent,
    TickReceived,
)
from core.schemas.market import ConnectionStatus, MarketSnapshot
from services.market_feed.tick_store import TickStore
from services.portfolio_manager.valuation import ValuationEngine
from services.watchlist.registry import SubscriptionRegistry

# Allowed status moves within one connection; a new connection id may start anywhere
_TRANSITIONS = {
    ConnectionStatus.CONNECTING: {ConnectionStatus.ONLINE, ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED},
    ConnectionStatus.ONLINE: {ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED},
    ConnectionStatus.ERROR: {ConnectionStatus.DISCONNECTED},
    ConnectionStatus.DISCONNECTED: set(),
}


class SyncCoordinator:
    """
    Single reducer over session events.

    Every input goes through ``apply_event``, which sequences the registry,
    the tick store and the valuation engine and returns a new immutable
    snapshot only when the event produced an observable change. Not safe to
    call concurrently; the session runner feeds it from one queue consumer.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        tick_store: Optional[TickStore] = None,
        valuation: Optional[ValuationEngine] = None,
    ):
        self.registry = registry
        self.tick_store = tick_store or TickStore()
        self.valuation = valuation or ValuationEngine()
        self.logger = get_market_data_logger_safe("sync")

        self._version = 0
        self._connection_status = ConnectionStatus.CONNECTING
        self._connection_id: Optional[int] = None
        self.stale_ticks = 0
        self._baseline_sequence: Optional[int] = None
        self.stale_baselines = 0

        self._handlers: Dict[EventType, Callable[[SessionEvent], bool]] = {
            EventType.TICK_RECEIVED: self._on_tick_received,
            EventType.BASELINE_LOADED: self._on_baseline_loaded,
            EventType.ENTRY_ADDED: self._on_entry_added,
            EventType.ENTRY_REMOVED: self._on_entry_removed,
            EventType.CONNECTION_STATUS_CHANGED: self._on_connection_status_changed,
            EventType.PERSISTENCE_COMPLETED: self._on_persistence_completed,
        }
        self._snapshot = self._build_snapshot()

    @property
    def snapshot(self) -> MarketSnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._version

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._connection_status

    def apply_event(self, event: SessionEvent) -> Optional[MarketSnapshot]:
        """Apply one event. Returns the new snapshot, or None when nothing observable changed."""
        changed = self._handlers[event.kind](event)
        if not changed:
            return None

        self._version += 1
        self._snapshot = self._build_snapshot()
        return self._snapshot

    # --- Handlers ---

    def _on_tick_received(self, event: TickReceived) -> bool:
        if self._is_stale_connection(event.connection_id):
            self.stale_ticks += 1
            return False

        tick = self.tick_store.ingest(event.raw)
        if tick is None:
            return False

        previous = self.tick_store.get(tick.instrument_id)
        instrument_id = self.tick_store.apply_tick(tick)

        name_changed = self.registry.upgrade_name_if_placeholder(instrument_id, tick.metadata)
        valuation_changed = self.valuation.on_tick(instrument_id, tick)
        display_changed = instrument_id in self.registry and previous != tick

        return name_changed or valuation_changed or display_changed

    def _on_baseline_loaded(self, event: BaselineLoaded) -> bool:
        if event.sequence is not None:
            if self._baseline_sequence is not None and event.sequence <= self._baseline_sequence:
                # A newer fetch has already landed
                self.stale_baselines += 1
                self.logger.info(
                    "Dropping stale baseline",
                    sequence=event.sequence,
                    applied_sequence=self._baseline_sequence,
                )
                return False
            self._baseline_sequence = event.sequence
        self.registry.merge_baseline(event.watchlist)
        self.valuation.load_baseline(event.positions, price_lookup=self._latest_price)
        return True

    def _on_entry_added(self, event: EntryAdded) -> bool:
        before = (self.registry.get(event.metadata.instrument_id), self.registry.pending_removals)
        self.registry.add_entry(event.metadata)
        after = (self.registry.get(event.metadata.instrument_id), self.registry.pending_removals)
        return before != after

    def _on_entry_removed(self, event: EntryRemoved) -> bool:
        return self.registry.remove_entry(event.instrument_id)

    def _on_connection_status_changed(self, event: ConnectionStatusChanged) -> bool:
        if self._connection_id is not None and event.connection_id < self._connection_id:
            # Late report from a replaced connection
            return False

        if event.connection_id == self._connection_id:
            if event.status == self._connection_status:
                return False
            if event.status not in _TRANSITIONS[self._connection_status]:
                self.logger.warning(
                    "Ignoring invalid connection status transition",
                    connection_id=event.connection_id,
                    from_status=self._connection_status.value,
                    to_status=event.status.value,
                )
                return False

        self._connection_id = event.connection_id
        self._connection_status = event.status
        self.logger.info(
            "Connection status changed",
            connection_id=event.connection_id,
            status=event.status.value,
            reason=event.reason,
        )
        return True

    def _on_persistence_completed(self, event: PersistenceCompleted) -> bool:
        if event.success:
            return self.registry.mark_synced(event.instrument_id, event.action)
        self.registry.mark_sync_failed(event.instrument_id, event.action, event.error)
        return False

    # --- Helpers ---

    def _is_stale_connection(self, connection_id: Optional[int]) -> bool:
        if connection_id is None or self._connection_id is None:
            return False
        if connection_id < self._connection_id:
            return True
        return connection_id == self._connection_id and self._connection_status.is_terminal

    def _latest_price(self, instrument_id: str) -> Optional[float]:
        tick = self.tick_store.get(instrument_id)
        return tick.last_price if tick else None

    def _build_snapshot(self) -> MarketSnapshot:
        return MarketSnapshot(
            version=self._version,
            watchlist=self.registry.entries(),
            ticks=self.tick_store.snapshot(),
            portfolio=self.valuation.snapshot(),
            connection_status=self._connection_status,
            protected_ids=self.registry.protected_ids,
            pending_removals=self.registry.pending_removals,
            dropped_ticks=self.tick_store.metrics.ticks_dropped,
        )
