from datetime import datetime

from core.schemas.market import ConnectionStatus, MarketSnapshot, Tick, WatchlistEntry
from core.trading.portfolio_models import PortfolioSnapshot
from app.render import (
    format_portfolio,
    format_search_results,
    format_snapshot,
    format_trade_history,
    format_watchlist,
)
from services.backend.models import SymbolSearchResult, TradeRecord
from tests.mocks.market_data import NIFTY, make_position


def _snapshot(**kwargs):
    defaults = dict(
        version=3,
        watchlist=(
            WatchlistEntry(instrument_id=NIFTY, display_name="NIFTY"),
            WatchlistEntry(instrument_id="12345", display_name="Token 12345", pending_sync=True),
        ),
        ticks={NIFTY: Tick(instrument_id=NIFTY, last_price=22000.5, change_abs=-12.25, change_percent=-0.06)},
        connection_status=ConnectionStatus.ONLINE,
        protected_ids=(NIFTY,),
    )
    defaults.update(kwargs)
    return MarketSnapshot(**defaults)


def test_watchlist_lines():
    lines = format_watchlist(_snapshot())
    assert "NIFTY" in lines[0]
    assert "22000.50" in lines[0]
    assert "-12.25" in lines[0]
    assert "[index]" in lines[0]
    # No tick yet: price placeholder, zero change
    assert "---" in lines[1]
    assert "+0.00" in lines[1]
    assert "[syncing]" in lines[1]


def test_portfolio_lines():
    portfolio = PortfolioSnapshot(
        positions=(make_position("1", quantity=10, avg_price=100.0, symbol="INFY-EQ").revalued(110.0),),
        total_pnl=100.0,
    )
    lines = format_portfolio(portfolio)
    assert "INFY-EQ" in lines[0]
    assert "+100.00" in lines[0]
    assert "(10.0%)" in lines[0]
    assert lines[-1] == "  Total P&L: +100.00"


def test_empty_portfolio():
    assert format_portfolio(PortfolioSnapshot()) == ["  No open positions"]


def test_snapshot_header():
    text = format_snapshot(_snapshot(dropped_ticks=2))
    header = text.splitlines()[0]
    assert header.startswith("Market [Online] v3")
    assert "dropped ticks: 2" in header
    assert "dropped" not in format_snapshot(_snapshot()).splitlines()[0]


def test_search_results_use_resolved_names():
    text = format_search_results([
        SymbolSearchResult(token="43210", symbol="NIFTY28MAR2421500CE", name="NIFTY",
                           expiry="28MAR2024", strike=21500.0, exch_seg="NFO"),
    ])
    assert "NIFTY 28 MAR 21500 CALL" in text
    assert "NFO" in text
    assert format_search_results([]) == "  No matches"


def test_trade_history():
    text = format_trade_history([
        TradeRecord(created_at=datetime(2024, 3, 15, 10, 0), symbol_name="INFY-EQ", trade_type="LONG_EXIT",
                    quantity=10, buy_price=100, sell_price=110, pnl=100, brokerage=20, net_pnl=80),
    ])
    assert "2024-03-15 10:00" in text
    assert "SELL" in text
    assert "+80.00" in text
    assert format_trade_history([]) == "  No trades"
