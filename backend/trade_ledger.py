"""
Trade Ledger - in-memory ownership of the active set and the settled history.

Every mutation of the active/history partition goes through this class under
one lock: admission, live price updates and the move to history. The move is
one-directional and happens at most once per trade; a second attempt for the
same id is discarded.

Also provides the aggregate statistics shown next to the trade list.
"""

import logging
import threading
from collections import deque, defaultdict
from dataclasses import replace
from typing import Optional, List, Dict, Any

from errors import DoubleSettlementAttempt
from trade_models import Trade, TradeStatus, TradeStats


logger = logging.getLogger(__name__)


class TradeLedger:
    """
    Active set + history for binary contracts.

    Features:
    - Atomic active -> history transition, never reversed
    - At-most-once settlement guard
    - Read-only views (copies) for display
    - Win rate / net P&L aggregation
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._active: Dict[str, Trade] = {}
        self._history: deque[Trade] = deque()
        self._settled_ids: set[str] = set()

    # -------------------------------------------------------------------------
    # WRITE OPERATIONS
    # -------------------------------------------------------------------------

    def admit(self, trade: Trade) -> None:
        """Insert a freshly opened trade into the active set"""
        if trade.status is not TradeStatus.ACTIVE:
            raise ValueError(f"Only active trades can be admitted, got {trade.status.value}")

        with self._lock:
            if trade.id in self._active or trade.id in self._settled_ids:
                raise ValueError(f"Duplicate trade id: {trade.id}")
            self._active[trade.id] = trade

    def update_current_price(self, trade_id: str, price: float) -> bool:
        """
        Set the live price of an active trade.

        Returns:
            False if the trade is no longer active (settled in the meantime)
        """
        with self._lock:
            trade = self._active.get(trade_id)
            if trade is None:
                return False
            trade.current_price = price
            return True

    def _pop_active(self, trade_id: str) -> Trade:
        trade = self._active.pop(trade_id, None)
        if trade is None:
            raise DoubleSettlementAttempt(trade_id)
        return trade

    def move_to_history(self, trade_id: str, settled_trade: Trade) -> bool:
        """
        Remove a trade from the active set and prepend its settled copy to history.

        Returns:
            True if the trade moved, False if it had already left the active set
        """
        if settled_trade.id != trade_id:
            raise ValueError(f"Settled trade {settled_trade.id} does not match {trade_id}")
        if not settled_trade.status.is_terminal:
            raise ValueError(f"Trade {trade_id} is not settled")

        with self._lock:
            try:
                self._pop_active(trade_id)
            except DoubleSettlementAttempt as e:
                logger.debug(f"Discarding settlement: {e}")
                return False

            self._history.appendleft(settled_trade)
            self._settled_ids.add(trade_id)

        return True

    # -------------------------------------------------------------------------
    # READ OPERATIONS
    # -------------------------------------------------------------------------

    def is_active(self, trade_id: str) -> bool:
        with self._lock:
            return trade_id in self._active

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def history_count(self) -> int:
        with self._lock:
            return len(self._history)

    def get_active_trades(self) -> List[Trade]:
        """Snapshot of active trades in admission order"""
        with self._lock:
            return [replace(t) for t in self._active.values()]

    def get_trade_history(self, limit: Optional[int] = None) -> List[Trade]:
        """Settled trades, most recent first. A negative limit returns nothing."""
        with self._lock:
            trades = list(self._history) if limit is None else list(self._history)[:max(0, limit)]
        return [replace(t) for t in trades]

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        with self._lock:
            trade = self._active.get(trade_id)
            if trade is None and trade_id in self._settled_ids:
                trade = next((t for t in self._history if t.id == trade_id), None)
            return replace(trade) if trade else None

    # -------------------------------------------------------------------------
    # STATISTICS
    # -------------------------------------------------------------------------

    @staticmethod
    def _aggregate(trades: List[Trade]) -> TradeStats:
        stats = TradeStats()
        for t in trades:
            if not t.status.is_terminal:
                continue
            stats.total_trades += 1
            stats.total_staked += t.amount
            stats.total_payout += t.payout or 0.0
            if t.status is TradeStatus.WON:
                stats.won += 1
            else:
                stats.lost += 1

        stats.net_pnl = stats.total_payout - stats.total_staked
        if stats.total_trades > 0:
            stats.win_rate = stats.won / stats.total_trades * 100
        return stats

    def stats(self) -> TradeStats:
        """Net P&L and win rate over settled trades"""
        with self._lock:
            completed = list(self._history)
            active_count = len(self._active)

        stats = self._aggregate(completed)
        stats.active_count = active_count
        return stats

    def asset_stats(self) -> List[Dict[str, Any]]:
        """Per-asset breakdown of settled trades"""
        with self._lock:
            by_asset: Dict[str, List[Trade]] = defaultdict(list)
            for t in self._history:
                by_asset[t.asset].append(t)

        rows = []
        for asset, trades in sorted(by_asset.items()):
            row = self._aggregate(trades).to_dict()
            row.pop("active_count")
            rows.append({"asset": asset, **row})
        return rows
