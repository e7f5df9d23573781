"""
Settlement - decides the outcome of an expiring binary contract.

Settlement draws the final price from the price process, applies the strict
up/down rule and computes the payout. It never mutates the active record: it
returns a settled copy, and the ledger decides whether that copy is committed.
"""

import logging
from dataclasses import replace
from typing import Optional

from config import PAYOUT_MULTIPLIER
from errors import DoubleSettlementAttempt
from price_process import PriceProcess
from trade_models import Trade, TradeStatus, is_winning_move

logger = logging.getLogger(__name__)


class SettlementEngine:
    """Computes Won/Lost, end price and payout for expired trades"""

    def __init__(self, price_process: PriceProcess, payout_multiplier: float = PAYOUT_MULTIPLIER):
        if payout_multiplier <= 0:
            raise ValueError(f"payout_multiplier must be positive, got {payout_multiplier}")
        self.price_process = price_process
        self.payout_multiplier = payout_multiplier

    def payout_for(self, trade: Trade, is_win: bool) -> float:
        return trade.amount * self.payout_multiplier if is_win else 0.0

    def settle(self, trade: Trade, now: float, end_price: Optional[float] = None) -> Trade:
        """
        Settle an active trade.

        Args:
            trade: Trade in ACTIVE state
            now: Settlement timestamp
            end_price: Final price; drawn from the price process when omitted

        Returns:
            A settled copy of the trade. The input is left untouched.

        Raises:
            DoubleSettlementAttempt: trade is already terminal
            RandomnessSourceFailure: the settlement draw failed
        """
        if trade.status.is_terminal:
            raise DoubleSettlementAttempt(trade.id)

        if end_price is None:
            end_price = self.price_process.sample_settlement(trade.start_price)

        is_win = is_winning_move(trade.direction, trade.start_price, end_price)

        return replace(
            trade,
            status=TradeStatus.WON if is_win else TradeStatus.LOST,
            current_price=None,
            end_price=end_price,
            end_time=now,
            payout=self.payout_for(trade, is_win),
        )
