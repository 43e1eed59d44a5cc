from typing import Callable, Dict, Iterable, Optional, Tuple

from core.logging import get_trading_logger_safe
from core.schemas.market import Tick
from core.trading.portfolio_models import PortfolioSnapshot, Position

PriceLookup = Callable[[str], Optional[float]]


class ValuationEngine:
    """
    Keeps held positions valued at the latest price.

    Positions are replaced wholesale by each baseline and revalued in place
    on ticks. The aggregate P&L is always re-summed from the positions,
    never adjusted incrementally.
    """

    def __init__(self):
        self._positions: Dict[str, Position] = {}
        self._total_pnl = 0.0
        self.logger = get_trading_logger_safe("portfolio_manager")

    def load_baseline(self, positions: Iterable[Position], price_lookup: Optional[PriceLookup] = None) -> None:
        """
        Replace all positions with a fetched baseline.

        Each position is priced at the backend's last price when it sent one,
        otherwise at the latest tick price from ``price_lookup``, otherwise at
        its average price.
        """
        loaded: Dict[str, Position] = {}
        for position in positions:
            price = self._baseline_price(position, price_lookup)
            loaded[position.instrument_id] = position.revalued(price)

        self._positions = loaded
        self._recompute_total()
        self.logger.info("Portfolio baseline loaded", positions=len(loaded), total_pnl=self._total_pnl)

    def on_tick(self, instrument_id: str, tick: Tick) -> bool:
        """Revalue the position held in ``instrument_id``. Returns True when anything changed."""
        position = self._positions.get(instrument_id)
        if position is None:
            return False
        if tick.last_price <= 0 or tick.last_price == position.last_price:
            return False

        self._positions[instrument_id] = position.revalued(tick.last_price)
        self._recompute_total()
        return True

    def get(self, instrument_id: str) -> Optional[Position]:
        return self._positions.get(instrument_id)

    def holds(self, instrument_id: str) -> bool:
        return instrument_id in self._positions

    def positions(self) -> Tuple[Position, ...]:
        return tuple(self._positions.values())

    @property
    def total_pnl(self) -> float:
        return self._total_pnl

    def snapshot(self) -> PortfolioSnapshot:
        return PortfolioSnapshot(positions=self.positions(), total_pnl=self._total_pnl)

    def _baseline_price(self, position: Position, price_lookup: Optional[PriceLookup]) -> float:
        if position.last_price > 0:
            return position.last_price
        if price_lookup is not None:
            tick_price = price_lookup(position.instrument_id)
            if tick_price is not None and tick_price > 0:
                return tick_price
        return position.avg_price

    def _recompute_total(self) -> None:
        self._total_pnl = float(sum(p.pnl for p in self._positions.values()))
