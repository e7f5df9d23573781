"""
Trade Engine - composition root for binary up/down contracts.

Wires the price process, settlement, ledger and clock together and exposes the
operations the outside world uses:

1. open_trade()    - validate and admit a new contract
2. check_expiry()  - on-demand expiry check (same path as the clock)
3. views           - active trades, history, stats
4. subscribe()     - TradeSettled notifications

The engine never moves funds. Callers debit the stake before opening a trade
and credit the payout from the TradeSettled event.
"""

import itertools
import logging
import math
import time
from typing import Optional, Callable, Any, List, Union

from config import EngineConfig
from errors import InvalidParameter
from price_process import PriceProcess, RandomSource
from settlement import SettlementEngine
from trade_clock import TradeClock, TickResult, dispatch_callback
from trade_ledger import TradeLedger
from trade_models import Trade, TradeSettled, TradeStats, Direction

logger = logging.getLogger(__name__)


def positive_number(name: str, value: Any) -> float:
    """Coerce a finite, positive number (numeric strings accepted) or raise InvalidParameter"""
    if isinstance(value, bool):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    if not math.isfinite(number) or number <= 0:
        raise InvalidParameter(f"{name} must be positive, got {value!r}")
    return number


class TradeEngine:
    """
    Owns the lifecycle of every contract from admission to settlement.

    Args:
        config: Engine parameters (defaults to EngineConfig())
        random_source: Randomness for the price process (seedable for tests)
        time_fn: Clock function returning Unix seconds
        price_process: Pre-built price process (overrides random_source)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        random_source: Optional[RandomSource] = None,
        time_fn: Callable[[], float] = time.time,
        price_process: Optional[PriceProcess] = None,
    ):
        self.config = config or EngineConfig()
        self.time_fn = time_fn

        self.price_process = price_process or PriceProcess(
            random_source=random_source,
            tick_volatility=self.config.tick_volatility,
            settlement_volatility=self.config.settlement_volatility,
        )
        self.settlement = SettlementEngine(self.price_process, self.config.payout_multiplier)
        self.ledger = TradeLedger()
        self.clock = TradeClock(
            ledger=self.ledger,
            price_process=self.price_process,
            on_expired=self._settle,
            interval=self.config.tick_interval_sec,
            time_fn=time_fn,
        )

        self._ids = itertools.count(1)
        self._listeners: List[Callable[[TradeSettled], Any]] = []
        self.on_trade_opened: Optional[Callable[[Trade], Any]] = None

    # -------------------------------------------------------------------------
    # ADMISSION
    # -------------------------------------------------------------------------

    def _next_id(self, now: float) -> str:
        return f"trade_{next(self._ids)}_{int(now * 1000)}"

    def _validate(self, asset: str, direction: Union[Direction, str], amount, start_price, duration):
        if not isinstance(asset, str) or not asset.strip():
            raise InvalidParameter(f"Unknown asset: {asset!r}")
        if self.config.enabled_assets is not None and asset not in self.config.enabled_assets:
            raise InvalidParameter(f"Unknown asset: {asset}")

        direction = Direction.parse(direction)
        amount = positive_number("amount", amount)
        start_price = positive_number("start_price", start_price)
        duration = positive_number("duration", duration)

        if amount < self.config.min_amount:
            raise InvalidParameter(f"Minimum trade amount is {self.config.min_amount:,.2f}")
        if self.config.allowed_durations and duration not in self.config.allowed_durations:
            raise InvalidParameter(
                f"Duration {duration:g}s not offered; choose one of {self.config.allowed_durations}"
            )
        return direction, amount, start_price, duration

    def open_trade(
        self,
        asset: str,
        direction: Union[Direction, str],
        amount: float,
        start_price: float,
        duration: float,
    ) -> Trade:
        """
        Admit a new contract.

        The caller must already have checked and debited the stake.

        Raises:
            InvalidParameter: bad asset, direction, amount, price or duration.
                Nothing is admitted in that case.
        """
        direction, amount, start_price, duration = self._validate(
            asset, direction, amount, start_price, duration
        )

        now = self.time_fn()
        trade = Trade(
            id=self._next_id(now),
            asset=asset,
            direction=direction,
            amount=amount,
            start_price=start_price,
            duration=duration,
            start_time=now,
            current_price=start_price,
        )
        self.ledger.admit(trade)

        logger.info(
            f"Opened {trade.id} | {asset} {direction.value.upper()} | "
            f"${amount:,.2f} @ {start_price} for {duration:g}s"
        )

        if self.on_trade_opened:
            dispatch_callback(self.on_trade_opened, trade)

        self.clock.wake()
        return self.ledger.get_trade(trade.id)

    # -------------------------------------------------------------------------
    # SETTLEMENT
    # -------------------------------------------------------------------------

    def _settle(self, trade: Trade, now: float) -> Optional[Trade]:
        """Settle an expired trade and commit it to history at most once"""
        if not self.ledger.is_active(trade.id):
            return None

        settled = self.settlement.settle(trade, now)
        if not self.ledger.move_to_history(trade.id, settled):
            return None

        logger.info(
            f"Settled {settled.id} | {settled.asset} {settled.direction.value.upper()} | "
            f"{settled.start_price} -> {settled.end_price} | {settled.status.value.upper()} | "
            f"P&L: ${settled.pnl:+.2f}"
        )

        event = TradeSettled(trade=settled)
        for listener in list(self._listeners):
            dispatch_callback(listener, event)
        return settled

    def check_expiry(self, trade_id: str, now: Optional[float] = None) -> Optional[Trade]:
        """
        On-demand expiry check for one trade, using the clock's own path.

        Returns:
            The settled trade if it expired and was settled by this call, else None
        """
        trade = self.ledger.get_trade(trade_id)
        if trade is None or not trade.is_active:
            return None

        now = self.time_fn() if now is None else now
        if not trade.is_expired(now):
            return None
        return self.clock.process_trade(trade, now)

    def tick(self, now: Optional[float] = None) -> TickResult:
        """Run one clock tick synchronously"""
        return self.clock.tick(now)

    # -------------------------------------------------------------------------
    # NOTIFICATIONS
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Callable[[TradeSettled], Any]) -> None:
        """Register a TradeSettled listener (sync or async)"""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[TradeSettled], Any]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def start(self) -> bool:
        """Start the clock if there is anything to drive"""
        return self.clock.wake()

    async def shutdown(self) -> None:
        """Stop the clock. Trades still active are abandoned."""
        active = self.ledger.active_count
        await self.clock.stop()
        if active:
            logger.warning(f"Engine stopped with {active} active trade(s) abandoned")

    # -------------------------------------------------------------------------
    # VIEWS
    # -------------------------------------------------------------------------

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        return self.ledger.get_trade(trade_id)

    def get_active_trades(self) -> List[Trade]:
        return self.ledger.get_active_trades()

    def get_trade_history(self, limit: Optional[int] = None) -> List[Trade]:
        return self.ledger.get_trade_history(limit)

    def get_stats(self) -> TradeStats:
        return self.ledger.stats()

    def potential_payout(self, trade: Trade) -> float:
        return trade.potential_payout(self.config.payout_multiplier)

    def active_view(self, now: Optional[float] = None) -> List[dict]:
        """Active trades with time remaining, progress and potential payout"""
        now = self.time_fn() if now is None else now
        rows = []
        for trade in self.ledger.get_active_trades():
            row = trade.to_dict(now)
            row["potential_payout"] = round(self.potential_payout(trade), 2)
            rows.append(row)
        return rows

    def history_view(self, limit: Optional[int] = None) -> List[dict]:
        return [t.to_dict() for t in self.ledger.get_trade_history(limit)]

    def get_summary(self, now: Optional[float] = None) -> dict:
        return {
            "stats": self.get_stats().to_dict(),
            "active": self.active_view(now),
            "recent_trades": self.history_view(limit=10),
            "by_asset": self.ledger.asset_stats(),
            "clock_running": self.clock.is_running,
        }
