# Tick formatting utilities for the backend market stream
import json
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.schemas.market import InstrumentMetadata, Tick, normalize_instrument_id
from core.utils.exceptions import MalformedTickError


class TickFormatter:
    """Formats raw stream messages into validated Tick models"""

    # Field aliases in priority order; the backend has shipped both spellings
    TOKEN_FIELDS = ("token", "instrument_token")
    PRICE_FIELDS = ("ltp", "last_price")
    CHANGE_FIELDS = ("change_diff", "change_abs")
    PERCENT_FIELDS = ("percent_change", "change_percent")

    def format_tick(self, raw_message: Any) -> Tick:
        """
        Parse one raw message (JSON text, bytes or an already decoded dict).

        Raises:
            MalformedTickError: message is not JSON, has no usable instrument
                id, or has a missing or non-numeric price.
        """
        raw_tick = self._decode(raw_message)

        instrument_id = self._instrument_id(raw_tick, raw_message)
        last_price = self._to_float(self._first(raw_tick, self.PRICE_FIELDS))
        if last_price is None:
            raise MalformedTickError(
                f"Tick for {instrument_id} has no numeric price",
                raw_message=raw_message,
                field="ltp",
            )

        return Tick(
            instrument_id=instrument_id,
            last_price=last_price,
            change_abs=self._to_float(self._first(raw_tick, self.CHANGE_FIELDS)),
            change_percent=self._to_float(self._first(raw_tick, self.PERCENT_FIELDS)),
            exchange_timestamp=self._format_datetime(
                raw_tick.get("exchange_timestamp") or raw_tick.get("timestamp")
            ),
            metadata=self._format_metadata(instrument_id, raw_tick),
        )

    def _decode(self, raw_message: Any) -> Dict[str, Any]:
        if isinstance(raw_message, dict):
            return raw_message
        if isinstance(raw_message, (bytes, bytearray)):
            try:
                raw_message = raw_message.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedTickError(f"Undecodable tick payload: {e}", raw_message=raw_message)
        if isinstance(raw_message, str):
            try:
                decoded = json.loads(raw_message)
            except json.JSONDecodeError as e:
                raise MalformedTickError(f"Tick is not valid JSON: {e}", raw_message=raw_message)
            if isinstance(decoded, dict):
                return decoded
        raise MalformedTickError("Tick payload is not a JSON object", raw_message=raw_message)

    def _instrument_id(self, raw_tick: Dict[str, Any], raw_message: Any) -> str:
        raw_token = self._first(raw_tick, self.TOKEN_FIELDS)
        token = normalize_instrument_id(raw_token)
        if token is None:
            raise MalformedTickError(f"Tick has no usable instrument token: {raw_token!r}",
                                     raw_message=raw_message, field="token")
        return token

    def _first(self, raw_tick: Dict[str, Any], fields) -> Any:
        for field in fields:
            value = raw_tick.get(field)
            if value is not None:
                return value
        return None

    def _to_float(self, value: Any) -> Optional[float]:
        """Numeric (or numeric string) to float; None for anything else."""
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return number

    def _format_metadata(self, instrument_id: str, raw_tick: Dict[str, Any]) -> Optional[InstrumentMetadata]:
        """Inline instrument metadata, when the feed attaches any."""
        symbol = raw_tick.get("symbol") or raw_tick.get("tradingsymbol")
        name = raw_tick.get("name")
        if not symbol and not name:
            return None

        return InstrumentMetadata(
            instrument_id=instrument_id,
            raw_symbol=str(symbol or name),
            display_name_hint=str(name) if name else None,
            expiry_code=str(raw_tick["expiry"]) if raw_tick.get("expiry") else None,
            strike_price=self._to_float(raw_tick.get("strike")),
            exchange=str(raw_tick["exchange"]) if raw_tick.get("exchange") else None,
        )

    def _format_datetime(self, dt_value: Any) -> Optional[datetime]:
        """Normalize a datetime value to UTC; unparseable values are ignored."""
        if dt_value is None:
            return None

        if isinstance(dt_value, datetime):
            # If naive, assume UTC
            if dt_value.tzinfo is None:
                return dt_value.replace(tzinfo=timezone.utc)
            return dt_value.astimezone(timezone.utc)

        if isinstance(dt_value, str):
            try:
                return self._format_datetime(datetime.fromisoformat(dt_value))
            except ValueError:
                try:
                    parsed = datetime.strptime(dt_value, "%Y-%m-%d %H:%M:%S")
                    return parsed.replace(tzinfo=timezone.utc)
                except ValueError:
                    return None

        return None
