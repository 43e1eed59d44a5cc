import pytest

from core.schemas.market import Tick
from core.trading.portfolio_models import Position, compute_pnl_percent
from services.portfolio_manager.valuation import ValuationEngine
from tests.mocks.market_data import make_position


def _tick(token, price):
    return Tick(instrument_id=token, last_price=price)


class TestPositionMath:
    def test_revalued_fields(self):
        p = make_position("1", quantity=10, avg_price=100.0).revalued(110.0)
        assert p.current_value == 1100.0
        assert p.pnl == 100.0
        assert p.pnl_percent == 10.0

    def test_short_position(self):
        p = make_position("1", quantity=-5, avg_price=200.0).revalued(190.0)
        assert p.current_value == -950.0
        assert p.pnl == 50.0

    def test_zero_avg_price_has_zero_percent(self):
        p = make_position("1", quantity=3, avg_price=0.0).revalued(50.0)
        assert p.pnl_percent == 0.0
        assert p.pnl == 150.0

    def test_percent_rounded_to_two_decimals(self):
        assert compute_pnl_percent(100.0, 30.0) == 233.33
        assert compute_pnl_percent(1.0, 3.0) == -66.67

    def test_position_is_immutable(self):
        p = make_position("1")
        with pytest.raises(Exception):
            p.quantity = 5


class TestLoadBaseline:
    def test_uses_backend_last_price_first(self):
        engine = ValuationEngine()
        engine.load_baseline([make_position("1", last_price=120.0)], price_lookup=lambda _id: 999.0)
        assert engine.get("1").last_price == 120.0
        assert engine.get("1").pnl == 200.0

    def test_falls_back_to_latest_tick_then_avg_price(self):
        engine = ValuationEngine()
        ticks = {"1": 105.0}
        engine.load_baseline(
            [make_position("1"), make_position("2", avg_price=50.0)],
            price_lookup=ticks.get,
        )
        assert engine.get("1").last_price == 105.0
        assert engine.get("2").last_price == 50.0
        assert engine.get("2").pnl == 0.0

    def test_replaces_wholesale(self):
        engine = ValuationEngine()
        engine.load_baseline([make_position("1"), make_position("2")])
        engine.load_baseline([make_position("3")])
        assert [p.instrument_id for p in engine.positions()] == ["3"]

    def test_total_pnl_is_sum_of_positions(self):
        engine = ValuationEngine()
        engine.load_baseline([
            make_position("1", quantity=10, avg_price=100.0, last_price=110.0),
            make_position("2", quantity=2, avg_price=50.0, last_price=40.0),
        ])
        assert engine.total_pnl == 100.0 - 20.0

    def test_empty_baseline(self):
        engine = ValuationEngine()
        engine.load_baseline([])
        snapshot = engine.snapshot()
        assert snapshot.positions == ()
        assert snapshot.total_pnl == 0.0


class TestOnTick:
    def setup_method(self):
        self.engine = ValuationEngine()
        self.engine.load_baseline([
            make_position("1", quantity=10, avg_price=100.0),
            make_position("2", quantity=4, avg_price=25.0),
        ])

    def test_unheld_instrument_is_a_no_op(self):
        before = self.engine.snapshot()
        assert self.engine.on_tick("999", _tick("999", 10.0)) is False
        assert self.engine.snapshot() == before

    @pytest.mark.parametrize("price", [0.0, -1.0])
    def test_non_positive_price_is_a_no_op(self, price):
        assert self.engine.on_tick("1", _tick("1", price)) is False
        assert self.engine.get("1").last_price == 100.0

    def test_recomputes_position_and_total(self):
        assert self.engine.on_tick("1", _tick("1", 110.0)) is True
        assert self.engine.get("1").pnl == 100.0
        assert self.engine.get("1").current_value == 1100.0
        assert self.engine.total_pnl == 100.0

        assert self.engine.on_tick("2", _tick("2", 20.0)) is True
        assert self.engine.total_pnl == 100.0 + (20.0 - 25.0) * 4

    def test_same_price_twice_is_idempotent(self):
        assert self.engine.on_tick("1", _tick("1", 110.0)) is True
        after_first = self.engine.snapshot()
        assert self.engine.on_tick("1", _tick("1", 110.0)) is False
        assert self.engine.snapshot() == after_first

    def test_total_matches_fresh_sum_after_many_ticks(self):
        prices = [101.1, 99.7, 100.3, 102.9, 98.05, 100.0, 101.35]
        for i, price in enumerate(prices):
            self.engine.on_tick("1", _tick("1", price))
            self.engine.on_tick("2", _tick("2", price / 4 + i))
        assert self.engine.total_pnl == sum(p.pnl for p in self.engine.positions())

    def test_tick_does_not_touch_other_positions(self):
        before = self.engine.get("2")
        self.engine.on_tick("1", _tick("1", 120.0))
        assert self.engine.get("2") == before


def test_snapshot_total_value():
    engine = ValuationEngine()
    engine.load_baseline([
        Position(instrument_id="1", quantity=2, avg_price=10.0, last_price=12.0),
        Position(instrument_id="2", quantity=1, avg_price=5.0, last_price=5.0),
    ])
    assert engine.snapshot().total_value == 29.0
