"""
Instrument Data Service

Provides instrument display-name resolution for watchlist and portfolio views.
"""

from .name_resolver import (
    InstrumentNameResolver,
    is_valid_display_name,
    resolve_instrument_name,
)

__all__ = [
    'InstrumentNameResolver',
    'is_valid_display_name',
    'resolve_instrument_name',
]
