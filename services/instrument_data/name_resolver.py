"""
Instrument display-name resolution.

Derivative contracts arrive as a bare trading symbol plus optional expiry and
strike metadata; this module turns them into the names shown on watchlist
cards, e.g. ``NIFTY 15 MAR 21500 CALL`` or ``BANKNIFTY 28 MAR FUT``.
Equities and indices keep their trading symbol.
"""

from typing import Iterable, Optional

from core.schemas.market import InstrumentMetadata

DEFAULT_INVALID_NAMES = frozenset({"null", "undefined", "---"})


def is_valid_display_name(name: Optional[str], invalid_names: Iterable[str] = DEFAULT_INVALID_NAMES) -> bool:
    """True for a non-blank name that is not a serialization artifact."""
    if name is None:
        return False
    stripped = name.strip()
    return bool(stripped) and stripped not in set(invalid_names)


class InstrumentNameResolver:
    """Stateless resolver; a class so it can be injected and replaced in tests."""

    CALL_SUFFIX = "CE"
    PUT_SUFFIX = "PE"

    def resolve(self, meta: InstrumentMetadata) -> str:
        """Resolve a display name. Never raises; falls back to the raw symbol."""
        expiry = (meta.expiry_code or "").strip()
        if not expiry:
            return meta.raw_symbol

        name = meta.display_name_hint or meta.raw_symbol
        day, month = expiry[:2], expiry[2:5]
        strike = meta.strike_price or 0

        if strike > 0:
            side = self._option_side(meta.raw_symbol)
            return f"{name} {day} {month} {int(strike)} {side}".rstrip()

        return f"{name} {day} {month} FUT"

    def _option_side(self, raw_symbol: str) -> str:
        if raw_symbol.endswith(self.CALL_SUFFIX):
            return "CALL"
        if raw_symbol.endswith(self.PUT_SUFFIX):
            return "PUT"
        return ""


def resolve_instrument_name(meta: InstrumentMetadata) -> str:
    """Module-level shortcut for callers that do not hold a resolver."""
    return InstrumentNameResolver().resolve(meta)
