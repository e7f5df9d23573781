"""
Paper Wallet - balance collaborator for the trade engine.

The engine never touches funds. This wallet plays the caller's part of the
contract: check the stake against the balance, debit it when the trade is
admitted, and credit the payout when a TradeSettled event arrives.
"""

import itertools
import logging
import time
from dataclasses import dataclass, asdict
from typing import Optional, Callable, List, Union

from errors import InsufficientBalance
from trade_engine import TradeEngine, positive_number
from trade_models import Trade, TradeSettled, Direction

logger = logging.getLogger(__name__)


class TransactionType:
    """Wallet transaction types"""
    DEBIT = "debit"     # Stake taken at open
    CREDIT = "credit"   # Payout on a winning settlement


@dataclass
class WalletTransaction:
    """One balance change"""
    id: str
    type: str
    amount: float           # Positive = credit, negative = debit
    balance_after: float
    reference_id: str       # Trade id
    created_at: float

    def to_dict(self) -> dict:
        return asdict(self)


class PaperWallet:
    """Simulated account balance"""

    def __init__(self, starting_balance: float = 10000.0, time_fn: Callable[[], float] = time.time):
        if starting_balance < 0:
            raise ValueError(f"starting_balance must not be negative, got {starting_balance}")
        self.starting_balance = starting_balance
        self.balance = starting_balance
        self.time_fn = time_fn
        self.transactions: List[WalletTransaction] = []
        self._ids = itertools.count(1)

    def _record(self, tx_type: str, amount: float, reference_id: str) -> WalletTransaction:
        self.balance += amount
        tx = WalletTransaction(
            id=f"tx_{next(self._ids)}",
            type=tx_type,
            amount=amount,
            balance_after=self.balance,
            reference_id=reference_id,
            created_at=self.time_fn(),
        )
        self.transactions.insert(0, tx)
        return tx

    def can_afford(self, amount: float) -> bool:
        return amount <= self.balance

    def attach(self, engine: TradeEngine) -> None:
        """Subscribe to settlements so payouts are credited"""
        engine.subscribe(self.on_trade_settled)

    def place_trade(
        self,
        engine: TradeEngine,
        asset: str,
        direction: Union[Direction, str],
        amount: float,
        start_price: float,
        duration: float,
    ) -> Trade:
        """
        Check the balance, open the trade, then debit the stake.

        Raises:
            InvalidParameter: stake is not a positive number, or the engine
                rejected the trade; no debit happens
            InsufficientBalance: stake exceeds the balance
        """
        amount = positive_number("amount", amount)
        if not self.can_afford(amount):
            raise InsufficientBalance(amount, self.balance)

        trade = engine.open_trade(asset, direction, amount, start_price, duration)
        self._record(TransactionType.DEBIT, -trade.amount, trade.id)
        logger.info(f"Debited ${trade.amount:,.2f} for {trade.id} | Balance: ${self.balance:,.2f}")
        return trade

    def on_trade_settled(self, event: TradeSettled) -> Optional[WalletTransaction]:
        """Credit the payout of a winning trade"""
        trade = event.trade
        if not trade.payout:
            return None

        tx = self._record(TransactionType.CREDIT, trade.payout, trade.id)
        logger.info(f"Credited ${trade.payout:,.2f} for {trade.id} | Balance: ${self.balance:,.2f}")
        return tx

    @property
    def total_pnl(self) -> float:
        return self.balance - self.starting_balance

    def to_dict(self) -> dict:
        return {
            "balance": round(self.balance, 2),
            "starting_balance": round(self.starting_balance, 2),
            "total_pnl": round(self.total_pnl, 2),
            "transactions": [t.to_dict() for t in self.transactions[:20]],
        }
