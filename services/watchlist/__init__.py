"""
Watchlist Service

Owns the user's subscribed instruments and their display names.
"""

from .registry import PersistenceScheduler, SubscriptionRegistry

__all__ = [
    'PersistenceScheduler',
    'SubscriptionRegistry',
]
