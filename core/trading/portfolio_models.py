from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from typing import Tuple


def compute_pnl_percent(last_price: float, avg_price: float) -> float:
    """Percent return over cost basis, 0 when there is no cost basis."""
    if avg_price == 0:
        return 0.0
    return round((last_price - avg_price) / avg_price * 100, 2)


class Position(BaseModel):
    """A held quantity of one instrument, valued at its last known price.

    Quantity, average price and symbol come from the backend; the value
    fields are derived here and are never trusted from the wire.
    """
    model_config = ConfigDict(frozen=True)

    instrument_id: str
    symbol: str = "Unknown"
    quantity: float = 0.0
    avg_price: float = 0.0
    last_price: float = 0.0
    current_value: float = 0.0
    pnl: float = 0.0
    pnl_percent: float = 0.0

    def revalued(self, last_price: float) -> "Position":
        """Return a copy priced at ``last_price`` with all derived fields recomputed."""
        return self.model_copy(update={
            "last_price": last_price,
            "current_value": last_price * self.quantity,
            "pnl": (last_price - self.avg_price) * self.quantity,
            "pnl_percent": compute_pnl_percent(last_price, self.avg_price),
        })


class PortfolioSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    positions: Tuple[Position, ...] = Field(default_factory=tuple)
    total_pnl: float = 0.0

    @property
    def total_value(self) -> float:
        return sum(p.current_value for p in self.positions)
