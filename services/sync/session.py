import asyncio
import itertools
from typing import Any, Callable, List, Optional, Set

from core.config.settings import Settings
from core.logging import get_error_logger_safe, get_market_data_logger_safe, get_trading_logger_safe
from core.schemas.events import (
    BaselineLoaded,
    EntryAdded,
    EntryRemoved,
    PersistenceAction,
    PersistenceCompleted,
    SessionEvent,
)
from core.schemas.market import InstrumentMetadata, MarketSnapshot
from core.utils.exceptions import PersistenceError, create_error_context
from services.backend.client import BackendClient
from services.backend.models import OrderResult, SymbolSearchResult, TradeOrder, TradeRecord
from services.instrument_data.name_resolver import InstrumentNameResolver
from services.market_feed.models import ReconnectionConfig
from services.market_feed.stream_client import MarketStreamClient
from services.watchlist.registry import SubscriptionRegistry

from .coordinator import SyncCoordinator

SnapshotListener = Callable[[MarketSnapshot], Any]


class MarketSession:
    """
    Runs one user's market session.

    Stream messages, baseline results, persistence completions and user
    commands are all posted to one event queue; a single consumer task feeds
    them to the coordinator in order and publishes every new snapshot to the
    registered listeners. Backend calls run as separate tasks and report
    back through the queue.
    """

    def __init__(
        self,
        settings: Settings,
        backend: BackendClient,
        resolver: Optional[InstrumentNameResolver] = None,
        stream_connect: Optional[Callable[[str], Any]] = None,
    ):
        self.settings = settings
        self.backend = backend
        self.user_id = settings.session.user_id
        self.ws_id = settings.session.ws_id

        self.registry = SubscriptionRegistry(settings.watchlist, resolver=resolver, persistence=self)
        self.coordinator = SyncCoordinator(self.registry)
        self.stream = MarketStreamClient(
            settings.market_stream_url(),
            on_event=self.post,
            reconnection=ReconnectionConfig.from_settings(settings.reconnection),
            connect=stream_connect,
        )

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=settings.sync.event_queue_maxsize)
        self._listeners: List[SnapshotListener] = []
        self._pending_tasks: Set[asyncio.Task] = set()
        self._consumer_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._running = False
        self._baseline_sequence = itertools.count(1)

        self.logger = get_market_data_logger_safe("sync_session")
        self.trading_logger = get_trading_logger_safe("sync_session_trading")
        self.error_logger = get_error_logger_safe("sync_session_errors")

    @property
    def snapshot(self) -> MarketSnapshot:
        return self.coordinator.snapshot

    @property
    def is_running(self) -> bool:
        return self._running

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    # --- Lifecycle ---

    async def start(self, connect_stream: bool = True):
        """Load the baseline, then open the tick stream."""
        if self._running:
            return
        self._running = True
        self._consumer_task = asyncio.create_task(self._consume_events())
        self.logger.info("🚀 Starting market session", user_id=self.user_id, ws_id=self.ws_id)

        await self.refresh_baseline()

        if connect_stream:
            await self.stream.start()

        interval = self.settings.sync.baseline_refresh_interval_seconds
        if interval > 0:
            self._refresh_task = asyncio.create_task(self._refresh_periodically(interval))

    async def stop(self):
        """Stop the stream first, then let queued events drain."""
        if not self._running:
            return
        self._running = False

        await self.stream.stop()

        if self._refresh_task:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        await self.drain()

        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None
        self.logger.info("✅ Market session stopped", version=self.coordinator.version)

    async def post(self, event: SessionEvent) -> None:
        await self._queue.put(event)

    async def drain(self) -> None:
        """Wait for in-flight persistence calls and every queued event."""
        # Applying queued events can schedule more persistence calls
        while self._pending_tasks or not self._queue.empty():
            if self._pending_tasks:
                await asyncio.gather(*self._pending_tasks)
            await self._queue.join()

    # --- Commands ---

    async def add_instrument(self, metadata: InstrumentMetadata) -> None:
        await self.post(EntryAdded(metadata=metadata))

    async def remove_instrument(self, instrument_id: str) -> None:
        await self.post(EntryRemoved(instrument_id=instrument_id))

    async def search(self, query: str) -> List[SymbolSearchResult]:
        return await self.backend.search_symbols(query)

    async def place_order(self, order: TradeOrder) -> OrderResult:
        """Forward an order; a successful fill triggers a baseline refresh."""
        result = await self.backend.place_order(order)
        if result.success:
            self.trading_logger.info("Order accepted, refreshing baseline", token=order.token)
            await self.refresh_baseline()
        return result

    async def trade_history(self) -> List[TradeRecord]:
        return await self.backend.fetch_trade_history(self.user_id)

    async def refresh_baseline(self) -> None:
        """Fetch watchlist and positions; a failed half is treated as empty."""
        # Numbered at start so a slow earlier fetch cannot overwrite a later one
        sequence = next(self._baseline_sequence)
        watchlist, positions = await asyncio.gather(
            self.backend.fetch_watchlist(self.user_id),
            self.backend.fetch_positions(self.user_id),
            return_exceptions=True,
        )

        if isinstance(watchlist, Exception):
            self._log_baseline_failure(watchlist, "fetch_watchlist")
            watchlist = []
        if isinstance(positions, Exception):
            self._log_baseline_failure(positions, "fetch_positions")
            positions = []

        await self.post(BaselineLoaded(watchlist=watchlist, positions=positions, sequence=sequence))

    # --- PersistenceScheduler ---

    def schedule(self, action: PersistenceAction, instrument_id: str) -> None:
        """Run a watchlist persistence call in the background; its result comes back as an event."""
        task = asyncio.create_task(self._persist(action, instrument_id))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _persist(self, action: PersistenceAction, instrument_id: str) -> None:
        persist = self.backend.persist_add if action == PersistenceAction.ADD else self.backend.persist_remove
        try:
            await persist(self.user_id, self.ws_id, instrument_id)
        except PersistenceError as e:
            self.error_logger.warning(
                "Watchlist persistence failed",
                **create_error_context(e, f"persist_{action.value}", {"instrument_id": instrument_id}),
            )
            await self.post(PersistenceCompleted(
                instrument_id=instrument_id, action=action, success=False, error=str(e)
            ))
            return

        await self.post(PersistenceCompleted(instrument_id=instrument_id, action=action, success=True))

    # --- Internals ---

    async def _consume_events(self):
        while True:
            event = await self._queue.get()
            try:
                snapshot = self.coordinator.apply_event(event)
                if snapshot is not None:
                    self._publish(snapshot)
            except Exception as e:
                self.error_logger.error(
                    f"Unhandled exception applying session event: {e}",
                    kind=event.kind.value,
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    def _publish(self, snapshot: MarketSnapshot) -> None:
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception as e:
                self.error_logger.error(f"Snapshot listener failed: {e}", exc_info=True)

    async def _refresh_periodically(self, interval: float):
        while self._running:
            await asyncio.sleep(interval)
            await self.refresh_baseline()

    def _log_baseline_failure(self, error: Exception, operation: str) -> None:
        self.error_logger.error(
            "Baseline fetch failed; treating as empty",
            **create_error_context(error, operation, {"user_id": self.user_id}),
        )
