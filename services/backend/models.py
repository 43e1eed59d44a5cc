# Backend API request/response models
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from core.schemas.market import InstrumentMetadata, normalize_instrument_id


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeOrder(BaseModel):
    """Order as sent to /trade/place_order; forwarded without validation of the trade itself"""
    user_id: str
    token: str
    symbol_name: str
    order_type: OrderSide
    quantity: int

    @field_validator("token", "user_id", mode="before")
    @classmethod
    def coerce_str(cls, v):
        return str(v) if v is not None else v

    @field_validator("order_type", mode="before")
    @classmethod
    def normalize_side(cls, v):
        return v.upper() if isinstance(v, str) else v


class OrderResult(BaseModel):
    status: str = "error"
    message: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == "success"


class TradeRecord(BaseModel):
    """One row of trade history; every amount is a server fact, displayed as returned"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    created_at: Optional[datetime] = None
    symbol_name: str = ""
    trade_type: str = ""
    quantity: float = 0.0
    buy_price: float = 0.0
    sell_price: float = 0.0
    pnl: float = 0.0
    brokerage: float = 0.0
    net_pnl: float = 0.0

    @field_validator("quantity", "buy_price", "sell_price", "pnl", "brokerage", "net_pnl", mode="before")
    @classmethod
    def none_as_zero(cls, v):
        return 0.0 if v is None else v

    @field_validator("symbol_name", "trade_type", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else str(v)

    @property
    def side(self) -> str:
        return "SELL" if self.trade_type == "LONG_EXIT" else "BUY"


class SymbolSearchResult(BaseModel):
    """Row returned by /search-symbol"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    token: str
    symbol: str = ""
    name: Optional[str] = None
    expiry: Optional[str] = None
    strike: Optional[float] = None
    exch_seg: Optional[str] = None

    @field_validator("token", mode="before")
    @classmethod
    def coerce_token(cls, v):
        return normalize_instrument_id(v)

    @field_validator("strike", mode="before")
    @classmethod
    def blank_strike(cls, v):
        return None if v in ("", None) else v

    def to_metadata(self) -> InstrumentMetadata:
        return InstrumentMetadata(
            instrument_id=self.token,
            raw_symbol=self.symbol,
            display_name_hint=self.name or None,
            expiry_code=self.expiry or None,
            strike_price=self.strike,
            exchange=self.exch_seg,
        )
