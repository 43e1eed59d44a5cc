"""
Normalization of backend response bodies.

The backend has shipped several shapes for the same resource (bare lists,
``{"status": ..., "positions": [...]}`` envelopes, bare instrument ids mixed
with metadata objects). Everything is folded into typed models here so the
core never sees raw JSON. Unusable items are skipped, never raised.
"""

import math
from typing import Any, List, Optional

from pydantic import ValidationError

from core.logging import get_api_logger_safe
from core.schemas.market import InstrumentMetadata, WatchlistEntry, normalize_instrument_id
from core.trading.portfolio_models import Position
from services.instrument_data.name_resolver import InstrumentNameResolver

from .models import OrderResult, SymbolSearchResult, TradeRecord


def _logger():
    return get_api_logger_safe("backend_parsers")


_resolver = InstrumentNameResolver()


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _unwrap_list(payload: Any, key: str) -> Optional[List[Any]]:
    """Bare list, or ``{"status": "success", key: [...]}``; None for anything else."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and payload.get("status") == "success":
        items = payload.get(key)
        if isinstance(items, list):
            return items
    return None


def metadata_from_item(item: dict) -> Optional[InstrumentMetadata]:
    """Instrument metadata from a watchlist or search object; None without a usable token."""
    instrument_id = normalize_instrument_id(item.get("token") or item.get("instrument_token"))
    if instrument_id is None:
        return None
    return InstrumentMetadata(
        instrument_id=instrument_id,
        raw_symbol=str(item.get("symbol") or ""),
        display_name_hint=str(item["name"]) if item.get("name") else None,
        expiry_code=str(item["expiry"]) if item.get("expiry") else None,
        strike_price=_to_float(item.get("strike")),
        exchange=str(item["exch_seg"]) if item.get("exch_seg") else None,
    )


def parse_watchlist(payload: Any) -> List[WatchlistEntry]:
    """
    Watchlist items are either a bare id (string or number) or an object with
    metadata. Bare ids carry no name; the registry gives them a placeholder.
    """
    if not isinstance(payload, list):
        _logger().warning("Unexpected watchlist payload", payload_type=type(payload).__name__)
        return []

    entries = []
    for item in payload:
        if isinstance(item, dict):
            meta = metadata_from_item(item)
            if meta is None:
                continue
            entries.append(WatchlistEntry(instrument_id=meta.instrument_id, display_name=_resolver.resolve(meta)))
        else:
            instrument_id = normalize_instrument_id(item)
            if instrument_id is None:
                continue
            entries.append(WatchlistEntry(instrument_id=instrument_id))
    return entries


def parse_positions(payload: Any) -> List[Position]:
    """Positions from the envelope or a bare list; anything else is an empty portfolio."""
    items = _unwrap_list(payload, "positions")
    if items is None:
        _logger().warning("Unexpected positions payload", payload_type=type(payload).__name__)
        return []

    positions = []
    for item in items:
        if not isinstance(item, dict):
            continue
        instrument_id = normalize_instrument_id(item.get("token"))
        if instrument_id is None:
            continue
        positions.append(Position(
            instrument_id=instrument_id,
            symbol=str(item.get("symbol") or "Unknown"),
            quantity=_to_float(item.get("quantity")) or 0.0,
            avg_price=_to_float(item.get("avg_price")) or 0.0,
            last_price=_to_float(item.get("ltp") or item.get("last_price")) or 0.0,
        ))
    return positions


def parse_trade_history(payload: Any) -> List[TradeRecord]:
    items = _unwrap_list(payload, "data")
    if items is None:
        _logger().warning("Unexpected trade history payload", payload_type=type(payload).__name__)
        return []

    records = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            records.append(TradeRecord.model_validate(item))
        except ValidationError as e:
            _logger().warning("Skipping unparseable trade record", error=str(e))
    return records


def parse_search_results(payload: Any) -> List[SymbolSearchResult]:
    items = payload if isinstance(payload, list) else _unwrap_list(payload, "data")
    if items is None:
        return []

    results = []
    for item in items:
        if not isinstance(item, dict) or normalize_instrument_id(item.get("token")) is None:
            continue
        try:
            results.append(SymbolSearchResult.model_validate(item))
        except ValidationError as e:
            _logger().warning("Skipping unparseable search result", error=str(e))
    return results


def parse_order_result(payload: Any) -> OrderResult:
    if not isinstance(payload, dict):
        return OrderResult(status="error", message="Unexpected order response")
    message = payload.get("message") or payload.get("detail")
    return OrderResult(
        status=str(payload.get("status") or "error"),
        message=str(message) if message is not None else None,
        raw=payload,
    )
