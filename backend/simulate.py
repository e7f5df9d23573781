#!/usr/bin/env python3
"""
Terminal simulator for binary up/down contracts.

Opens a batch of random trades through the paper wallet, runs the trade clock
and renders the active trades and running stats until everything has settled.

Usage:
    python simulate.py --trades 8 --seed 42
    python simulate.py --trades 3 --duration 30 --interval 0.5
"""

import argparse
import asyncio
import logging
import random
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from config import EngineConfig, ASSETS, ALLOWED_DURATIONS, price_precision
from errors import InsufficientBalance, InvalidParameter
from paper_wallet import PaperWallet
from price_process import UniformNoise
from quotes import QuoteBoard
from trade_engine import TradeEngine
from trade_log import setup_logging

logger = logging.getLogger(__name__)
console = Console()


# ============================================================================
# RENDERING
# ============================================================================

def _fmt_price(asset: str, price: Optional[float]) -> str:
    if price is None:
        return "-"
    return f"{price:.{price_precision(asset)}f}"


def _fmt_remaining(seconds: float) -> str:
    return f"{int(seconds // 60)}:{int(seconds % 60):02d}"


def build_active_table(engine: TradeEngine, now: float) -> Table:
    table = Table(title="Active Trades", expand=True)
    table.add_column("ID", style="dim")
    table.add_column("Asset")
    table.add_column("Dir")
    table.add_column("Stake", justify="right")
    table.add_column("Start", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Left", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Status")

    for trade in engine.get_active_trades():
        winning = trade.is_currently_winning
        table.add_row(
            trade.id,
            trade.asset,
            Text(trade.direction.value.upper(), style="green" if trade.direction.value == "up" else "red"),
            f"${trade.amount:,.2f}",
            _fmt_price(trade.asset, trade.start_price),
            _fmt_price(trade.asset, trade.current_price),
            _fmt_remaining(trade.time_remaining(now)),
            f"{trade.progress(now) * 100:5.1f}%",
            Text("Winning" if winning else "Losing", style="green" if winning else "red"),
        )
    return table


def build_history_table(engine: TradeEngine, limit: int = 10) -> Table:
    table = Table(title="Recent Settlements", expand=True)
    table.add_column("ID", style="dim")
    table.add_column("Asset")
    table.add_column("Dir")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Result")
    table.add_column("P&L", justify="right")

    for trade in engine.get_trade_history(limit):
        won = trade.status.value == "won"
        table.add_row(
            trade.id,
            trade.asset,
            trade.direction.value.upper(),
            _fmt_price(trade.asset, trade.start_price),
            _fmt_price(trade.asset, trade.end_price),
            Text(trade.status.value.upper(), style="green" if won else "red"),
            Text(f"${trade.pnl:+,.2f}", style="green" if trade.pnl >= 0 else "red"),
        )
    return table


def build_stats_panel(engine: TradeEngine, wallet: PaperWallet) -> Panel:
    stats = engine.get_stats()
    pnl_style = "green" if stats.net_pnl >= 0 else "red"
    body = Text.assemble(
        ("Balance: ", "bold"), f"${wallet.balance:,.2f}   ",
        ("Net P&L: ", "bold"), (f"${stats.net_pnl:+,.2f}", pnl_style), "   ",
        ("Win rate: ", "bold"), f"{stats.win_rate:.1f}%   ",
        ("Settled: ", "bold"), f"{stats.total_trades} ({stats.won}W / {stats.lost}L)   ",
        ("Active: ", "bold"), f"{stats.active_count}",
    )
    return Panel(body, title="Binary Trading")


def render(engine: TradeEngine, wallet: PaperWallet) -> Group:
    now = engine.time_fn()
    return Group(
        build_stats_panel(engine, wallet),
        build_active_table(engine, now),
        build_history_table(engine),
    )


# ============================================================================
# SIMULATION
# ============================================================================

def open_random_trades(
    engine: TradeEngine,
    wallet: PaperWallet,
    quotes: QuoteBoard,
    count: int,
    rng: random.Random,
    duration: Optional[int] = None,
) -> int:
    """Open up to `count` random trades. Returns how many were admitted."""
    opened = 0
    for _ in range(count):
        asset = rng.choice(list(ASSETS.keys()))
        try:
            wallet.place_trade(
                engine,
                asset=asset,
                direction=rng.choice(["up", "down"]),
                amount=float(rng.choice([10, 25, 50, 100, 250])),
                start_price=quotes.quote(asset),
                duration=duration or rng.choice(ALLOWED_DURATIONS),
            )
            opened += 1
        except (InvalidParameter, InsufficientBalance) as e:
            logger.warning(f"Trade not opened: {e}")
    return opened


async def run_simulation(args) -> TradeEngine:
    config = EngineConfig.product_defaults(
        tick_interval_sec=args.interval,
        starting_balance=args.balance,
    )
    if args.duration and args.duration not in ALLOWED_DURATIONS:
        config.allowed_durations = None

    engine = TradeEngine(config=config, random_source=UniformNoise(args.seed))
    quotes = QuoteBoard(random_source=UniformNoise(None if args.seed is None else args.seed + 1))
    wallet = PaperWallet(starting_balance=config.starting_balance, time_fn=engine.time_fn)
    wallet.attach(engine)

    rng = random.Random(args.seed)
    opened = open_random_trades(engine, wallet, quotes, args.trades, rng, args.duration)
    console.print(f"[bold]Opened {opened} trade(s)[/bold]")

    try:
        with Live(render(engine, wallet), console=console, refresh_per_second=4) as live:
            while engine.ledger.active_count > 0:
                await asyncio.sleep(0.25)
                live.update(render(engine, wallet))
    finally:
        await engine.shutdown()

    stats = engine.get_stats()
    console.print(build_history_table(engine, limit=args.trades))
    console.print(
        f"[bold]Final:[/bold] {stats.total_trades} settled | win rate {stats.win_rate:.1f}% | "
        f"net P&L ${stats.net_pnl:+,.2f} | balance ${wallet.balance:,.2f}"
    )
    return engine


def main():
    parser = argparse.ArgumentParser(description="Simulate binary up/down contracts in the terminal")
    parser.add_argument("--trades", type=int, default=5, help="Number of trades to open")
    parser.add_argument("--duration", type=int, default=None, help="Contract length in seconds (default: random menu choice)")
    parser.add_argument("--interval", type=float, default=1.0, help="Clock tick interval in seconds")
    parser.add_argument("--balance", type=float, default=1000.0, help="Starting paper balance")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible runs")
    parser.add_argument("--log-dir", default="logs", help="Directory for log files")
    args = parser.parse_args()

    setup_logging(args.log_dir, console=False)
    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
