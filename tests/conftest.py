"""
Pytest configuration and shared fixtures for Market Pulse tests.
"""
import pytest

from core.config.settings import (
    BackendSettings,
    LoggingSettings,
    ReconnectionSettings,
    SessionSettings,
    Settings,
    WatchlistSettings,
)
from core.schemas.market import InstrumentMetadata, WatchlistEntry
from services.market_feed.tick_store import TickStore
from services.portfolio_manager.valuation import ValuationEngine
from services.sync.coordinator import SyncCoordinator
from services.watchlist.registry import SubscriptionRegistry
from tests.mocks.market_data import RecordingScheduler


@pytest.fixture
def test_settings():
    """Test settings configuration."""
    return Settings(
        environment="testing",
        backend=BackendSettings(base_url="https://backend.test", ws_url="wss://backend.test"),
        session=SessionSettings(user_id="u1", ws_id="ws1"),
        reconnection=ReconnectionSettings(enabled=False, max_attempts=2, base_delay_seconds=0.0),
        logging=LoggingSettings(console_enabled=False, file_enabled=False),
    )


@pytest.fixture
def watchlist_settings():
    return WatchlistSettings()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def registry(watchlist_settings, scheduler):
    return SubscriptionRegistry(watchlist_settings, persistence=scheduler)


@pytest.fixture
def coordinator(registry):
    return SyncCoordinator(registry, TickStore(), ValuationEngine())


@pytest.fixture
def option_metadata():
    return InstrumentMetadata(
        instrument_id="43210",
        raw_symbol="NIFTY28MAR2421500CE",
        display_name_hint="NIFTY",
        expiry_code="28MAR2024",
        strike_price=21500.0,
        exchange="NFO",
    )


@pytest.fixture
def baseline_entries():
    return [
        WatchlistEntry(instrument_id="12345"),
        WatchlistEntry(instrument_id="2885", display_name="RELIANCE-EQ"),
    ]
