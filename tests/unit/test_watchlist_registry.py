from core.config.settings import WatchlistSettings
from core.schemas.events import PersistenceAction
from core.schemas.market import InstrumentMetadata, WatchlistEntry
from services.watchlist.registry import SubscriptionRegistry
from tests.mocks.market_data import BANKNIFTY, NIFTY


def _names(registry):
    return {e.instrument_id: e.display_name for e in registry.entries()}


class TestProtectedEntries:
    def test_seeded_on_construction(self, registry):
        assert _names(registry) == {NIFTY: "NIFTY", BANKNIFTY: "BANKNIFTY"}
        assert registry.is_protected(NIFTY)
        assert set(registry.protected_ids) == {NIFTY, BANKNIFTY}

    def test_reinserted_with_canonical_names_after_merge(self, registry):
        registry.merge_baseline([
            WatchlistEntry(instrument_id=NIFTY, display_name="Nifty Fifty"),
            WatchlistEntry(instrument_id="12345", display_name="INFY-EQ"),
        ])
        names = _names(registry)
        assert names[NIFTY] == "NIFTY"
        assert names[BANKNIFTY] == "BANKNIFTY"
        assert names["12345"] == "INFY-EQ"

    def test_remove_protected_is_rejected(self, registry, scheduler):
        assert registry.remove_entry(NIFTY) is False
        assert NIFTY in registry
        assert scheduler.calls == []

    def test_add_protected_is_a_no_op(self, registry, scheduler):
        entry = registry.add_entry(InstrumentMetadata(instrument_id=BANKNIFTY, raw_symbol="Nifty Bank"))
        assert entry.display_name == "BANKNIFTY"
        assert not entry.pending_sync
        assert scheduler.calls == []

    def test_custom_protected_set(self, scheduler):
        settings = WatchlistSettings(protected_instruments={"1": "SENSEX"})
        registry = SubscriptionRegistry(settings, persistence=scheduler)
        registry.merge_baseline([])
        assert _names(registry) == {"1": "SENSEX"}


class TestMergeBaseline:
    def test_placeholder_for_missing_and_sentinel_names(self, registry):
        registry.merge_baseline([
            WatchlistEntry(instrument_id="1"),
            WatchlistEntry(instrument_id="2", display_name="null"),
            WatchlistEntry(instrument_id="3", display_name="undefined"),
            WatchlistEntry(instrument_id="4", display_name="---"),
            WatchlistEntry(instrument_id="5", display_name="  TCS-EQ "),
        ])
        names = _names(registry)
        assert names["1"] == "Token 1"
        assert names["2"] == "Token 2"
        assert names["3"] == "Token 3"
        assert names["4"] == "Token 4"
        assert names["5"] == "TCS-EQ"

    def test_duplicates_last_wins(self, registry):
        registry.merge_baseline([
            WatchlistEntry(instrument_id="7", display_name="FIRST"),
            WatchlistEntry(instrument_id="7", display_name="SECOND"),
        ])
        assert _names(registry)["7"] == "SECOND"
        assert len(registry) == 3

    def test_full_replace(self, registry):
        registry.merge_baseline([WatchlistEntry(instrument_id="1", display_name="A")])
        registry.merge_baseline([WatchlistEntry(instrument_id="2", display_name="B")])
        assert "1" not in registry
        assert "2" in registry

    def test_clears_pending_removals(self, registry):
        registry.merge_baseline([WatchlistEntry(instrument_id="1", display_name="A")])
        registry.remove_entry("1")
        assert registry.pending_removals == ("1",)
        registry.merge_baseline([])
        assert registry.pending_removals == ()

    def test_merge_is_idempotent(self, registry, baseline_entries):
        registry.merge_baseline(baseline_entries)
        first = registry.entries()
        registry.merge_baseline(baseline_entries)
        assert registry.entries() == first


class TestLocalMutations:
    def test_add_resolves_name_and_schedules(self, registry, scheduler, option_metadata):
        entry = registry.add_entry(option_metadata)
        assert entry.display_name == "NIFTY 28 MAR 21500 CALL"
        assert entry.pending_sync is True
        assert registry.get("43210") == entry
        assert scheduler.calls == [(PersistenceAction.ADD, "43210")]

    def test_add_with_unresolvable_name_uses_placeholder(self, registry):
        entry = registry.add_entry(InstrumentMetadata(instrument_id="999"))
        assert entry.display_name == "Token 999"

    def test_add_is_an_upsert(self, registry):
        registry.add_entry(InstrumentMetadata(instrument_id="5", raw_symbol="OLD"))
        registry.add_entry(InstrumentMetadata(instrument_id="5", raw_symbol="NEW"))
        assert [e.instrument_id for e in registry.entries()].count("5") == 1
        assert registry.get("5").display_name == "NEW"

    def test_remove_schedules_and_tracks_pending(self, registry, scheduler):
        registry.add_entry(InstrumentMetadata(instrument_id="5", raw_symbol="TCS-EQ"))
        assert registry.remove_entry("5") is True
        assert "5" not in registry
        assert registry.pending_removals == ("5",)
        assert scheduler.calls[-1] == (PersistenceAction.REMOVE, "5")

    def test_remove_absent_is_a_no_op(self, registry, scheduler):
        assert registry.remove_entry("404") is False
        assert scheduler.calls == []

    def test_add_after_remove_clears_pending_removal(self, registry):
        meta = InstrumentMetadata(instrument_id="5", raw_symbol="TCS-EQ")
        registry.add_entry(meta)
        registry.remove_entry("5")
        registry.add_entry(meta)
        assert registry.pending_removals == ()

    def test_one_entry_per_id_under_mixed_operations(self, registry):
        for i in range(5):
            registry.add_entry(InstrumentMetadata(instrument_id=str(i % 3), raw_symbol=f"S{i}"))
        registry.remove_entry("1")
        registry.merge_baseline([WatchlistEntry(instrument_id="2"), WatchlistEntry(instrument_id="2")])
        registry.add_entry(InstrumentMetadata(instrument_id="2", raw_symbol="X"))
        ids = [e.instrument_id for e in registry.entries()]
        assert len(ids) == len(set(ids))
        assert {NIFTY, BANKNIFTY} <= set(ids)


class TestNameUpgrade:
    def test_placeholder_is_upgraded(self, registry):
        registry.merge_baseline([WatchlistEntry(instrument_id="12345")])
        changed = registry.upgrade_name_if_placeholder(
            "12345", InstrumentMetadata(instrument_id="12345", raw_symbol="INFY-EQ")
        )
        assert changed is True
        assert registry.get("12345").display_name == "INFY-EQ"

    def test_upgrade_is_monotonic(self, registry):
        registry.merge_baseline([WatchlistEntry(instrument_id="12345")])
        registry.upgrade_name_if_placeholder("12345", InstrumentMetadata(instrument_id="12345", raw_symbol="INFY-EQ"))
        changed = registry.upgrade_name_if_placeholder(
            "12345", InstrumentMetadata(instrument_id="12345", raw_symbol="OTHER")
        )
        assert changed is False
        assert registry.get("12345").display_name == "INFY-EQ"

    def test_resolved_name_is_never_overwritten(self, registry):
        registry.merge_baseline([WatchlistEntry(instrument_id="2885", display_name="RELIANCE-EQ")])
        assert registry.upgrade_name_if_placeholder(
            "2885", InstrumentMetadata(instrument_id="2885", raw_symbol="RELIANCE")
        ) is False

    def test_unusable_candidate_is_ignored(self, registry):
        registry.merge_baseline([WatchlistEntry(instrument_id="1")])
        assert registry.upgrade_name_if_placeholder("1", InstrumentMetadata(instrument_id="1")) is False
        assert registry.upgrade_name_if_placeholder(
            "1", InstrumentMetadata(instrument_id="1", raw_symbol="null")
        ) is False
        assert registry.upgrade_name_if_placeholder("1", None) is False
        assert registry.get("1").display_name == "Token 1"

    def test_unknown_instrument_is_not_added(self, registry):
        assert registry.upgrade_name_if_placeholder(
            "777", InstrumentMetadata(instrument_id="777", raw_symbol="NEW")
        ) is False
        assert "777" not in registry


class TestSyncBookkeeping:
    def test_mark_synced_clears_pending_flag(self, registry):
        registry.add_entry(InstrumentMetadata(instrument_id="5", raw_symbol="TCS-EQ"))
        assert registry.mark_synced("5", PersistenceAction.ADD) is True
        assert registry.get("5").pending_sync is False
        assert registry.mark_synced("5", PersistenceAction.ADD) is False

    def test_mark_synced_removal(self, registry):
        registry.add_entry(InstrumentMetadata(instrument_id="5", raw_symbol="TCS-EQ"))
        registry.remove_entry("5")
        assert registry.mark_synced("5", PersistenceAction.REMOVE) is True
        assert registry.pending_removals == ()

    def test_failed_sync_keeps_local_state(self, registry):
        registry.add_entry(InstrumentMetadata(instrument_id="5", raw_symbol="TCS-EQ"))
        registry.mark_sync_failed("5", PersistenceAction.ADD, "HTTP 500")
        assert registry.get("5").pending_sync is True
