# Plain-text rendering of session state for the CLI
from typing import Iterable, List

from core.schemas.market import MarketSnapshot
from core.trading.portfolio_models import PortfolioSnapshot
from services.backend.models import SymbolSearchResult, TradeRecord
from services.instrument_data.name_resolver import resolve_instrument_name


def _signed(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.2f}"


def format_watchlist(snapshot: MarketSnapshot) -> List[str]:
    lines = []
    for card in snapshot.cards():
        price = f"{card.last_price:.2f}" if card.last_price is not None else "---"
        flags = ""
        if card.protected:
            flags += " [index]"
        if card.pending_sync:
            flags += " [syncing]"
        lines.append(
            f"  {card.display_name:<32} {price:>12} {_signed(card.change_abs):>10} "
            f"({_signed(card.change_percent)}%){flags}"
        )
    return lines


def format_portfolio(portfolio: PortfolioSnapshot) -> List[str]:
    if not portfolio.positions:
        return ["  No open positions"]

    lines = []
    for p in portfolio.positions:
        lines.append(
            f"  {p.symbol:<24} qty {p.quantity:>8g}  avg {p.avg_price:>10.2f}  ltp {p.last_price:>10.2f}  "
            f"value {p.current_value:>12.2f}  P&L {_signed(p.pnl):>10} ({p.pnl_percent}%)"
        )
    lines.append(f"  Total P&L: {_signed(portfolio.total_pnl)}")
    return lines


def format_snapshot(snapshot: MarketSnapshot) -> str:
    lines = [
        f"Market [{snapshot.connection_status.value}] v{snapshot.version}"
        + (f"  dropped ticks: {snapshot.dropped_ticks}" if snapshot.dropped_ticks else ""),
        "Watchlist:",
        *format_watchlist(snapshot),
        "Portfolio:",
        *format_portfolio(snapshot.portfolio),
    ]
    return "\n".join(lines)


def format_search_results(results: Iterable[SymbolSearchResult]) -> str:
    lines = [
        f"  {r.token:>10}  {resolve_instrument_name(r.to_metadata()):<36} {r.exch_seg or ''}"
        for r in results
    ]
    return "\n".join(lines) if lines else "  No matches"


def format_trade_history(records: Iterable[TradeRecord]) -> str:
    lines = []
    for r in records:
        when = r.created_at.strftime("%Y-%m-%d %H:%M") if r.created_at else "-"
        lines.append(
            f"  {when:<16} {r.symbol_name:<24} {r.side:<4} qty {r.quantity:>6g}  "
            f"buy {r.buy_price:>10.2f}  sell {r.sell_price:>10.2f}  "
            f"P&L {_signed(r.pnl):>10}  brokerage {r.brokerage:>8.2f}  net {_signed(r.net_pnl):>10}"
        )
    return "\n".join(lines) if lines else "  No trades"
