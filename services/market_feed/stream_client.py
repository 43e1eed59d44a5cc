import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import WebSocketException

from core.logging import get_error_logger_safe, get_market_data_logger_safe
from core.schemas.events import ConnectionStatusChanged, SessionEvent, TickReceived
from core.schemas.market import ConnectionStatus
from core.utils.exceptions import StreamConnectionError, create_error_context

from .models import ConnectionStats, ReconnectionConfig

EventSink = Callable[[SessionEvent], Awaitable[None]]


class MarketStreamClient:
    """
    Consumes the backend market websocket for one session.

    Every raw message is forwarded as a TickReceived event tagged with the id
    of the connection it arrived on; status transitions are forwarded as
    ConnectionStatusChanged events. Each (re)connection gets a new id, so the
    coordinator can drop ticks from connections that have been replaced.
    """

    def __init__(
        self,
        url: str,
        on_event: EventSink,
        reconnection: Optional[ReconnectionConfig] = None,
        connect: Optional[Callable[[str], Any]] = None,
    ):
        self.url = url
        self._on_event = on_event
        self.reconnection_config = reconnection or ReconnectionConfig()
        self._connect = connect or websockets.connect
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._ws = None
        self._connection_id = 0
        self._reconnection_attempts = 0
        self.connection_stats = ConnectionStats()
        self.logger = get_market_data_logger_safe("market_feed")
        self.error_logger = get_error_logger_safe("market_feed_errors")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def connection_id(self) -> int:
        return self._connection_id

    async def start(self):
        """Start the connect/read/reconnect loop in a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_feed())
        self.logger.info("🚀 Market stream client started", url=self.url)

    async def stop(self):
        """Close the active connection and stop reconnecting."""
        self._running = False

        if self._ws is not None:
            await self._ws.close()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._connection_id and self.connection_stats.current_status not in (
            ConnectionStatus.DISCONNECTED, ConnectionStatus.ERROR
        ):
            await self._emit_status(ConnectionStatus.DISCONNECTED, self._connection_id, "client stopped")
        self.logger.info("✅ Market stream client stopped")

    async def wait_closed(self):
        """Wait until the client gave up reconnecting or was stopped."""
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run_feed(self):
        while self._running:
            connection_id = self._connection_id = self._connection_id + 1
            self.connection_stats.connection_attempts += 1
            await self._emit_status(ConnectionStatus.CONNECTING, connection_id)

            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    self._on_connect(connection_id)
                    await self._emit_status(ConnectionStatus.ONLINE, connection_id)

                    async for message in ws:
                        if not self._running:
                            break
                        self.connection_stats.messages_received += 1
                        await self._on_event(TickReceived(raw=message, connection_id=connection_id))

                self._on_close(connection_id)
                await self._emit_status(ConnectionStatus.DISCONNECTED, connection_id, "connection closed")
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                error = StreamConnectionError(f"Market stream failed: {e}", url=self.url)
                self._on_error(error)
                await self._emit_status(ConnectionStatus.ERROR, connection_id, str(e))
            finally:
                self._ws = None

            if not await self._attempt_reconnection():
                break

        self._running = False

    async def _attempt_reconnection(self) -> bool:
        """
        Wait out the backoff delay before the next attempt.

        Returns False when the client should stop instead of reconnecting.
        """
        if not self._running or not self.reconnection_config.enabled:
            return False

        if self._reconnection_attempts >= self.reconnection_config.max_attempts:
            self.logger.error(
                f"❌ Maximum reconnection attempts ({self.reconnection_config.max_attempts}) reached. "
                "Stopping stream client."
            )
            self._running = False
            return False

        self._reconnection_attempts += 1
        delay = self.reconnection_config.delay_for(self._reconnection_attempts)
        self.logger.info(
            f"🔄 Reconnection attempt {self._reconnection_attempts}/"
            f"{self.reconnection_config.max_attempts} in {delay:.1f} seconds"
        )
        await asyncio.sleep(delay)
        return self._running

    def _on_connect(self, connection_id: int):
        self.logger.info("✅ WebSocket connected", connection_id=connection_id)
        self.connection_stats.successful_connections += 1
        self.connection_stats.last_connection_time = datetime.now(timezone.utc)
        self._reconnection_attempts = 0

    def _on_close(self, connection_id: int):
        self.logger.warning("WebSocket closed", connection_id=connection_id)
        self.connection_stats.disconnections += 1
        self.connection_stats.last_disconnection_time = datetime.now(timezone.utc)

    def _on_error(self, error: StreamConnectionError):
        self.connection_stats.errors += 1
        self.error_logger.error(
            "WebSocket error",
            **create_error_context(error, "market_stream", {"url": self.url}),
        )

    async def _emit_status(self, status: ConnectionStatus, connection_id: int, reason: Optional[str] = None):
        self.connection_stats.current_status = status
        await self._on_event(ConnectionStatusChanged(status=status, connection_id=connection_id, reason=reason))

    def get_metrics(self) -> Dict[str, Any]:
        """Connection metrics for the CLI status dump."""
        return {
            "connection_id": self._connection_id,
            "reconnection_attempts": self._reconnection_attempts,
            "is_running": self._running,
            **self.connection_stats.model_dump(mode="json"),
        }
