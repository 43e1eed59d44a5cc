from .client import BackendClient
from .models import OrderResult, OrderSide, SymbolSearchResult, TradeOrder, TradeRecord

__all__ = [
    "BackendClient",
    "OrderResult",
    "OrderSide",
    "SymbolSearchResult",
    "TradeOrder",
    "TradeRecord",
]
