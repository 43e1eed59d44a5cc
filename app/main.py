import asyncio
import signal
import sys
from typing import Callable, Optional

from dependency_injector import providers

from core.logging import configure_logging, get_logger
from core.config.settings import Settings
from core.schemas.market import MarketSnapshot
from core.utils.exceptions import ConfigurationError
from app.containers import AppContainer
from app.render import format_snapshot


class SessionOrchestrator:
    """Runs one market session until a shutdown signal arrives."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        render_interval: float = 5.0,
        output: Callable[[str], None] = print,
        connect_stream: bool = True,
    ):
        self.container = AppContainer()
        self._shutdown_event = asyncio.Event()

        if settings is not None:
            self.container.settings.override(providers.Object(settings))

        self.settings = self.container.settings()
        configure_logging(self.settings)
        self.logger = get_logger("market_pulse.main", component="application")

        self.session = self.container.market_session()
        self._render_interval = render_interval
        self._output = output
        self._connect_stream = connect_stream
        self._latest: Optional[MarketSnapshot] = None
        self._rendered_version = -1
        self._render_task: Optional[asyncio.Task] = None

        self.session.add_listener(self._on_snapshot)

    def _validate_session_configuration(self):
        for field in ("user_id", "ws_id"):
            value = getattr(self.settings.session, field)
            if not value:
                raise ConfigurationError(
                    f"SESSION__{field.upper()} is not configured",
                    config_field=f"session.{field}",
                    config_value=value,
                )

    async def startup(self):
        self.logger.info(f"🚀 Starting {self.settings.app_name} v{self.settings.version}")
        try:
            self._validate_session_configuration()
        except ConfigurationError as e:
            self.logger.critical("❌ Configuration validation failed", error=e.message, field=e.config_field)
            sys.exit(1)

        for service in self.container.lifespan_services():
            if service is self.session:
                await service.start(connect_stream=self._connect_stream)
            else:
                await service.start()

        if self._render_interval > 0:
            self._render_task = asyncio.create_task(self._render_loop())
        self.logger.info("✅ Market session started", user_id=self.settings.session.user_id)

    async def shutdown(self):
        """Gracefully stop the session, then the backend client."""
        self.logger.info("🛑 Shutting down market session...")
        if self._render_task:
            self._render_task.cancel()
            try:
                await self._render_task
            except asyncio.CancelledError:
                pass
            self._render_task = None

        for service in reversed(self.container.lifespan_services()):
            try:
                await service.stop()
            except Exception as e:
                self.logger.error(f"Error stopping {type(service).__name__}: {e}")

        self._render()
        self.logger.info("✅ Shutdown complete.")

    def _on_snapshot(self, snapshot: MarketSnapshot):
        self._latest = snapshot

    async def _render_loop(self):
        while not self._shutdown_event.is_set():
            self._render()
            await asyncio.sleep(self._render_interval)

    def _render(self):
        if self._latest is None or self._latest.version == self._rendered_version:
            return
        self._rendered_version = self._latest.version
        self._output(format_snapshot(self._latest))

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        try:
            self.logger.info(f"Received shutdown signal: {signal.strsignal(signum)}")
            self._shutdown_event.set()
        except Exception as e:
            # Fallback to stderr if logging fails during shutdown
            print(f"Error in signal handler: {e}", file=sys.stderr)
            self._shutdown_event.set()

    def request_shutdown(self):
        self._shutdown_event.set()

    async def run(self):
        """Run the session until shutdown."""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            await self.startup()
            self.logger.info("Session is now running. Press Ctrl+C to exit.")
            await self._shutdown_event.wait()
        finally:
            await self.shutdown()


async def main(settings: Optional[Settings] = None, render_interval: float = 5.0,
               output: Callable[[str], None] = print):
    """Application entry point"""
    app = SessionOrchestrator(settings=settings, render_interval=render_interval, output=output)
    await app.run()


if __name__ == "__main__":
    asyncio.run(main())
