# Simple CLI for Market Pulse
import asyncio
import sys
from typing import Optional

import click

from app.main import main as run_app
from app.render import format_portfolio, format_search_results, format_trade_history
from core.config.settings import Settings
from core.logging import configure_logging
from core.utils.exceptions import MarketPulseException
from services.backend.client import BackendClient
from services.backend.models import TradeOrder
from services.portfolio_manager.valuation import ValuationEngine


def _load_settings(user_id: Optional[str], ws_id: Optional[str]) -> Settings:
    settings = Settings()
    overrides = {k: v for k, v in {"user_id": user_id, "ws_id": ws_id}.items() if v}
    if overrides:
        settings = settings.model_copy(update={"session": settings.session.model_copy(update=overrides)})
    return settings


def _run(coro):
    """Run a one-shot backend command, turning client errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except MarketPulseException as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)


@click.group()
@click.option("--user-id", envvar="SESSION__USER_ID", help="Backend user id")
@click.option("--ws-id", envvar="SESSION__WS_ID", help="Market stream session id")
@click.pass_context
def cli(ctx, user_id, ws_id):
    """Market Pulse CLI"""
    settings = _load_settings(user_id, ws_id)
    configure_logging(settings)
    ctx.obj = settings


@cli.command()
@click.option("--refresh", default=5.0, show_default=True, help="Seconds between watchlist dumps")
@click.pass_obj
def run(settings: Settings, refresh: float):
    """Run a live market session"""
    click.echo("📈 Starting Market Pulse...")
    asyncio.run(run_app(settings=settings, render_interval=refresh, output=click.echo))


@cli.command()
@click.argument("query")
@click.pass_obj
def search(settings: Settings, query: str):
    """Search instruments by symbol"""
    async def _search():
        async with BackendClient(settings.backend) as backend:
            return await backend.search_symbols(query)

    click.echo(format_search_results(_run(_search())))


@cli.command()
@click.argument("token")
@click.pass_obj
def add(settings: Settings, token: str):
    """Add an instrument to the watchlist"""
    async def _add():
        async with BackendClient(settings.backend) as backend:
            await backend.persist_add(settings.session.user_id, settings.session.ws_id, token)

    _run(_add())
    click.echo(f"✅ Added {token}")


@cli.command()
@click.argument("token")
@click.pass_obj
def remove(settings: Settings, token: str):
    """Remove an instrument from the watchlist"""
    if token in settings.watchlist.protected_instruments:
        click.echo(f"❌ {settings.watchlist.protected_instruments[token]} is protected and cannot be removed", err=True)
        sys.exit(1)

    async def _remove():
        async with BackendClient(settings.backend) as backend:
            await backend.persist_remove(settings.session.user_id, settings.session.ws_id, token)

    _run(_remove())
    click.echo(f"✅ Removed {token}")


@cli.command()
@click.pass_obj
def positions(settings: Settings):
    """Show open positions valued at their last known price"""
    async def _positions():
        async with BackendClient(settings.backend) as backend:
            return await backend.fetch_positions(settings.session.user_id)

    engine = ValuationEngine()
    engine.load_baseline(_run(_positions()))
    click.echo("\n".join(format_portfolio(engine.snapshot())))


@cli.command()
@click.pass_obj
def history(settings: Settings):
    """Show trade history"""
    async def _history():
        async with BackendClient(settings.backend) as backend:
            return await backend.fetch_trade_history(settings.session.user_id)

    click.echo(format_trade_history(_run(_history())))


@cli.command()
@click.argument("token")
@click.argument("side", type=click.Choice(["BUY", "SELL"], case_sensitive=False))
@click.argument("quantity", type=int)
@click.option("--symbol", "symbol_name", default=None, help="Display name sent with the order")
@click.pass_obj
def order(settings: Settings, token: str, side: str, quantity: int, symbol_name: Optional[str]):
    """Place a market order"""
    trade_order = TradeOrder(
        user_id=settings.session.user_id,
        token=token,
        symbol_name=symbol_name or token,
        order_type=side,
        quantity=quantity,
    )

    async def _order():
        async with BackendClient(settings.backend) as backend:
            return await backend.place_order(trade_order)

    result = _run(_order())
    if result.success:
        click.echo(f"✅ {result.message or 'Order placed'}")
    else:
        click.echo(f"❌ {result.message or 'Order Failed'}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
