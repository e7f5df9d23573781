"""
Trade Clock - the periodic driver of all time-based change.

Each tick walks a snapshot of the active set. Expired trades are handed to the
settlement callback; the others get a fresh live price. A failure while
processing one trade is logged and confined to that trade for that tick; the
trade stays active and is retried on the next tick.

The clock runs as an asyncio task only while there is something to do: at
least one active trade or at least one observer. It stops by itself once idle
and is woken again by the next admission or observer.
"""

import asyncio
import inspect
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Callable, Any, List

from config import TICK_INTERVAL_SEC
from errors import RandomnessSourceFailure
from price_process import PriceProcess
from trade_ledger import TradeLedger
from trade_models import Trade

logger = logging.getLogger(__name__)

# Strong references to fire-and-forget callback tasks
_pending_tasks: set = set()


def dispatch_callback(callback: Callable[..., Any], *args) -> None:
    """
    Call a sync or async callback without letting it break the caller.

    Coroutines are scheduled on the running loop. Errors are logged.
    """
    try:
        result = callback(*args)
    except Exception as e:
        logger.error(f"Error in callback {getattr(callback, '__name__', callback)}: {e}")
        return

    if inspect.isawaitable(result):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(result):
                result.close()
            logger.warning("Async callback dropped: no running event loop")
            return
        task = asyncio.ensure_future(result, loop=loop)
        _pending_tasks.add(task)
        task.add_done_callback(_on_callback_done)


def _on_callback_done(task: asyncio.Future) -> None:
    _pending_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error(f"Error in async callback: {exc}")


@dataclass
class TickResult:
    """What one tick did"""
    timestamp: float
    refreshed: int = 0
    settled: List[Trade] = field(default_factory=list)
    failed: int = 0
    skipped: int = 0  # Trades already being processed elsewhere


class TradeClock:
    """
    Fixed-cadence scheduler for active trades.

    Args:
        ledger: Owner of the active set
        price_process: Source of live prices
        on_expired: Called with (trade, now) for expired trades; returns the settled
            trade, or None if the settlement was discarded
        interval: Seconds between ticks
        time_fn: Clock function returning Unix seconds
    """

    def __init__(
        self,
        ledger: TradeLedger,
        price_process: PriceProcess,
        on_expired: Callable[[Trade, float], Optional[Trade]],
        interval: float = TICK_INTERVAL_SEC,
        time_fn: Callable[[], float] = time.time,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self.ledger = ledger
        self.price_process = price_process
        self.on_expired = on_expired
        self.interval = interval
        self.time_fn = time_fn

        self.on_tick: Optional[Callable[[TickResult], Any]] = None

        self._task: Optional[asyncio.Task] = None
        self._observers = 0
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()
        self.tick_count = 0

    # -------------------------------------------------------------------------
    # PER-TRADE PROCESSING
    # -------------------------------------------------------------------------

    def _claim(self, trade_id: str) -> bool:
        with self._in_flight_lock:
            if trade_id in self._in_flight:
                return False
            self._in_flight.add(trade_id)
            return True

    def _release(self, trade_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(trade_id)

    def process_trade(self, trade: Trade, now: float, result: Optional[TickResult] = None) -> Optional[Trade]:
        """
        Advance one trade: settle it if expired, otherwise refresh its live price.

        Returns:
            The settled trade if this call settled it, else None
        """
        result = result or TickResult(timestamp=now)

        if not self._claim(trade.id):
            result.skipped += 1
            return None

        try:
            if trade.is_expired(now):
                settled = self.on_expired(trade, now)
                if settled is not None:
                    result.settled.append(settled)
                return settled

            price = self.price_process.sample_interim(trade.start_price)
            if self.ledger.update_current_price(trade.id, price):
                result.refreshed += 1
            return None

        except RandomnessSourceFailure as e:
            result.failed += 1
            logger.warning(f"Tick skipped for {trade.id}, will retry: {e}")
        except Exception as e:
            result.failed += 1
            logger.error(f"Error processing trade {trade.id}: {type(e).__name__}: {e}")
        finally:
            self._release(trade.id)

        return None

    def tick(self, now: Optional[float] = None) -> TickResult:
        """Run one pass over the current active set"""
        now = self.time_fn() if now is None else now
        result = TickResult(timestamp=now)

        for trade in self.ledger.get_active_trades():
            self.process_trade(trade, now, result)

        self.tick_count += 1
        if result.settled or result.failed:
            logger.debug(
                f"Tick {self.tick_count}: refreshed={result.refreshed} "
                f"settled={len(result.settled)} failed={result.failed}"
            )
        return result

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def observers(self) -> int:
        return self._observers

    @property
    def is_idle(self) -> bool:
        return self.ledger.active_count == 0 and self._observers == 0

    def add_observer(self) -> None:
        """Register a caller watching the trade views (keeps the clock alive)"""
        self._observers += 1
        self.wake()

    def remove_observer(self) -> None:
        self._observers = max(0, self._observers - 1)

    def wake(self) -> bool:
        """
        Start the tick loop if it is not running and there is work.

        Returns:
            True if a new loop task was started
        """
        if self.is_running or self.is_idle:
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; drive the clock with tick()")
            return False

        self._task = loop.create_task(self._run())
        return True

    async def _run(self) -> None:
        logger.info(f"TradeClock started (interval {self.interval}s)")
        try:
            while True:
                await asyncio.sleep(self.interval)

                try:
                    result = self.tick()
                except Exception as e:
                    logger.error(f"Tick failed: {type(e).__name__}: {e}")
                    continue

                if self.on_tick:
                    dispatch_callback(self.on_tick, result)

                if self.is_idle:
                    break
        finally:
            logger.info(f"TradeClock stopped after {self.tick_count} ticks")

    async def stop(self) -> None:
        """Cancel the tick loop. Trades still active are left as they are."""
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
