from typing import Any, Dict, Optional

from core.logging import get_error_logger_safe, get_market_data_logger_safe
from core.schemas.market import Tick
from core.utils.exceptions import MalformedTickError, create_error_context

from .formatter import TickFormatter
from .models import MarketDataMetrics


class TickStore:
    """
    Latest tick per instrument.

    Each tick message is a complete snapshot for its instrument, so applying
    one is an unconditional overwrite (last write wins). Malformed messages
    are dropped here and never propagate as exceptions.
    """

    def __init__(self, formatter: Optional[TickFormatter] = None):
        self.formatter = formatter or TickFormatter()
        self._ticks: Dict[str, Tick] = {}
        self.metrics = MarketDataMetrics()
        self.logger = get_market_data_logger_safe("tick_store")
        self.error_logger = get_error_logger_safe("tick_store_errors")

    def get(self, instrument_id: str) -> Optional[Tick]:
        return self._ticks.get(instrument_id)

    def snapshot(self) -> Dict[str, Tick]:
        """Copy of the current map; safe to hand to renderers."""
        return dict(self._ticks)

    def __len__(self) -> int:
        return len(self._ticks)

    def ingest(self, raw_message: Any) -> Optional[Tick]:
        """Parse a raw stream message; None (and a soft error) when malformed."""
        try:
            tick = self.formatter.format_tick(raw_message)
        except MalformedTickError as e:
            self.metrics.record_dropped()
            self.error_logger.warning(
                "Dropping malformed tick",
                **create_error_context(e, "ingest_tick", {"raw_message": repr(raw_message)[:200]}),
            )
            return None
        return tick

    def apply_tick(self, tick: Tick) -> str:
        """Store ``tick`` as the latest for its instrument and return that instrument id."""
        self._ticks[tick.instrument_id] = tick
        self.metrics.record_tick(len(self._ticks))
        return tick.instrument_id
