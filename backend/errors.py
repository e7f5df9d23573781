"""
Error types raised by the trade engine and its collaborators.
"""


class TradeEngineError(Exception):
    """Base class for trade engine errors"""


class InvalidParameter(TradeEngineError, ValueError):
    """A trade request was rejected before admission (bad amount, duration, asset or direction)"""


class DoubleSettlementAttempt(TradeEngineError):
    """A trade was already moved out of the active set. Internal only, treated as a no-op."""

    def __init__(self, trade_id: str):
        super().__init__(f"Trade already settled: {trade_id}")
        self.trade_id = trade_id


class RandomnessSourceFailure(TradeEngineError):
    """The injected randomness source failed or produced an unusable draw"""


class InsufficientBalance(TradeEngineError, ValueError):
    """Stake exceeds the available balance of the paper wallet"""

    def __init__(self, amount: float, balance: float):
        super().__init__(f"Insufficient balance: stake ${amount:,.2f} > available ${balance:,.2f}")
        self.amount = amount
        self.balance = balance
