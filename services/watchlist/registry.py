# Watchlist state: instrument id -> display name, with protected entries
from typing import Dict, Iterable, Optional, Protocol, Set, Tuple

from core.config.settings import WatchlistSettings
from core.logging import get_audit_logger_safe, get_market_data_logger_safe
from core.schemas.events import PersistenceAction
from core.schemas.market import InstrumentMetadata, WatchlistEntry
from services.instrument_data.name_resolver import InstrumentNameResolver, is_valid_display_name


class PersistenceScheduler(Protocol):
    """Fire-and-forget hook for backend watchlist persistence."""

    def schedule(self, action: PersistenceAction, instrument_id: str) -> None:
        ...


class SubscriptionRegistry:
    """
    Owns the watchlist: exactly one entry per instrument id.

    Protected instruments (index benchmarks) are seeded on construction,
    cannot be removed, and are re-inserted with their canonical names after
    every baseline merge. Local adds/removes are optimistic: the entry is
    changed immediately and persistence is only scheduled, never awaited.
    """

    def __init__(
        self,
        settings: WatchlistSettings,
        resolver: Optional[InstrumentNameResolver] = None,
        persistence: Optional[PersistenceScheduler] = None,
    ):
        self.resolver = resolver or InstrumentNameResolver()
        self.persistence = persistence
        self._protected: Dict[str, str] = dict(settings.protected_instruments)
        self._placeholder_prefix = settings.placeholder_prefix
        self._invalid_names = frozenset(settings.invalid_names)
        self._entries: Dict[str, WatchlistEntry] = {}
        self._pending_removals: Set[str] = set()
        self.logger = get_market_data_logger_safe("watchlist")
        self.audit_logger = get_audit_logger_safe("watchlist_audit")

        self._reinsert_protected()

    # --- Queries ---

    def entries(self) -> Tuple[WatchlistEntry, ...]:
        return tuple(self._entries.values())

    def get(self, instrument_id: str) -> Optional[WatchlistEntry]:
        return self._entries.get(instrument_id)

    def __contains__(self, instrument_id: str) -> bool:
        return instrument_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def is_protected(self, instrument_id: str) -> bool:
        return instrument_id in self._protected

    @property
    def protected_ids(self) -> Tuple[str, ...]:
        return tuple(self._protected)

    @property
    def pending_removals(self) -> Tuple[str, ...]:
        return tuple(sorted(self._pending_removals))

    def placeholder_name(self, instrument_id: str) -> str:
        return f"{self._placeholder_prefix}{instrument_id}"

    def is_placeholder(self, name: Optional[str]) -> bool:
        return not name or name.startswith(self._placeholder_prefix)

    # --- Mutations ---

    def merge_baseline(self, entries: Iterable[WatchlistEntry]) -> None:
        """Replace the whole watchlist with a fetched baseline."""
        merged: Dict[str, WatchlistEntry] = {}
        for entry in entries:
            name = entry.display_name
            if not is_valid_display_name(name, self._invalid_names):
                name = self.placeholder_name(entry.instrument_id)
            # Dict assignment keeps first-seen order while the last duplicate wins
            merged[entry.instrument_id] = entry.model_copy(update={"display_name": name.strip()})

        self._entries = merged
        self._pending_removals.clear()
        self._reinsert_protected()
        self.logger.info("Watchlist baseline merged", entries=len(self._entries))

    def add_entry(self, meta: InstrumentMetadata) -> WatchlistEntry:
        """Upsert an entry named by the resolver and schedule persistence."""
        instrument_id = meta.instrument_id
        if self.is_protected(instrument_id):
            return self._entries[instrument_id]

        name = self.resolver.resolve(meta)
        if not is_valid_display_name(name, self._invalid_names):
            name = self.placeholder_name(instrument_id)

        entry = WatchlistEntry(instrument_id=instrument_id, display_name=name, pending_sync=True)
        self._entries[instrument_id] = entry
        self._pending_removals.discard(instrument_id)
        self.audit_logger.info("Watchlist entry added", instrument_id=instrument_id, display_name=name)
        self._schedule(PersistenceAction.ADD, instrument_id)
        return entry

    def remove_entry(self, instrument_id: str) -> bool:
        """Delete a non-protected entry. Returns False when rejected or absent."""
        if self.is_protected(instrument_id):
            self.logger.info("Refusing to remove protected instrument", instrument_id=instrument_id)
            return False
        if instrument_id not in self._entries:
            return False

        del self._entries[instrument_id]
        self._pending_removals.add(instrument_id)
        self.audit_logger.info("Watchlist entry removed", instrument_id=instrument_id)
        self._schedule(PersistenceAction.REMOVE, instrument_id)
        return True

    def upgrade_name_if_placeholder(self, instrument_id: str, candidate: Optional[InstrumentMetadata]) -> bool:
        """Replace a placeholder name with a resolved one. Returns True on change.

        Names only move from placeholder to resolved; a resolved or manually
        chosen name is never overwritten.
        """
        entry = self._entries.get(instrument_id)
        if entry is None or candidate is None:
            return False
        if not self.is_placeholder(entry.display_name):
            return False

        name = self.resolver.resolve(candidate)
        if not is_valid_display_name(name, self._invalid_names):
            return False
        name = name.strip()
        if name == entry.display_name or self.is_placeholder(name):
            return False

        self._entries[instrument_id] = entry.model_copy(update={"display_name": name})
        self.logger.debug("Upgraded placeholder name", instrument_id=instrument_id, display_name=name)
        return True

    def mark_synced(self, instrument_id: str, action: PersistenceAction) -> bool:
        """Clear the pending-sync marker once the backend acknowledged a change."""
        if action == PersistenceAction.REMOVE:
            if instrument_id in self._pending_removals:
                self._pending_removals.discard(instrument_id)
                return True
            return False

        entry = self._entries.get(instrument_id)
        if entry is None or not entry.pending_sync:
            return False
        self._entries[instrument_id] = entry.model_copy(update={"pending_sync": False})
        return True

    def mark_sync_failed(self, instrument_id: str, action: PersistenceAction, error: Optional[str] = None) -> None:
        # No rollback: the entry stays pending until the next baseline replaces it
        self.logger.warning(
            "Watchlist change not persisted; keeping local state",
            instrument_id=instrument_id,
            action=action.value,
            error=error,
        )

    def _reinsert_protected(self) -> None:
        for instrument_id, name in self._protected.items():
            self._entries[instrument_id] = WatchlistEntry(instrument_id=instrument_id, display_name=name)

    def _schedule(self, action: PersistenceAction, instrument_id: str) -> None:
        if self.persistence is not None:
            self.persistence.schedule(action, instrument_id)
