"""
Trade data model for binary up/down contracts.

A Trade is created Active by the engine, gets its live price refreshed by the
clock, and is settled exactly once into Won or Lost. Terminal fields
(end_price, end_time, payout) are only set on the settled copy that moves to
history.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from errors import InvalidParameter


class Direction(Enum):
    """Which way the trader expects the price to move"""
    UP = "up"
    DOWN = "down"

    @classmethod
    def parse(cls, value: Union["Direction", str]) -> "Direction":
        """Accept a Direction or a case-insensitive "up"/"down" string"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.lower().strip())
            except ValueError:
                pass
        raise InvalidParameter(f"Unknown direction: {value!r}")


class TradeStatus(Enum):
    """Contract lifecycle. WON and LOST are terminal."""
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self is not TradeStatus.ACTIVE


def is_winning_move(direction: Direction, start_price: float, price: float) -> bool:
    """Strict comparison both ways: an unchanged price wins for nobody"""
    delta = price - start_price
    if direction is Direction.UP:
        return delta > 0
    return delta < 0


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class Trade:
    """One binary contract"""
    id: str
    asset: str
    direction: Direction
    amount: float                   # Stake, fixed at open
    start_price: float              # Reference price at open
    duration: float                 # Contract length in seconds
    start_time: float               # Unix timestamp at open
    status: TradeStatus = TradeStatus.ACTIVE
    current_price: Optional[float] = None   # Live price, only while ACTIVE
    end_price: Optional[float] = None
    end_time: Optional[float] = None
    payout: Optional[float] = None  # amount * multiplier on WON, 0 on LOST

    @property
    def is_active(self) -> bool:
        return self.status is TradeStatus.ACTIVE

    @property
    def expires_at(self) -> float:
        return self.start_time + self.duration

    def elapsed(self, now: float) -> float:
        return max(0.0, now - self.start_time)

    def is_expired(self, now: float) -> bool:
        return self.elapsed(now) >= self.duration

    def time_remaining(self, now: float) -> float:
        """Seconds until expiry, never negative"""
        return max(0.0, self.duration - self.elapsed(now))

    def progress(self, now: float) -> float:
        """Fraction of the duration elapsed, clamped to [0, 1]"""
        return min(1.0, self.elapsed(now) / self.duration)

    def potential_payout(self, payout_multiplier: float) -> float:
        return self.amount * payout_multiplier

    @property
    def is_currently_winning(self) -> bool:
        """Whether the trade would win if it settled at the live price"""
        price = self.current_price if self.current_price is not None else self.start_price
        return is_winning_move(self.direction, self.start_price, price)

    @property
    def pnl(self) -> Optional[float]:
        if self.payout is None:
            return None
        return self.payout - self.amount

    def to_dict(self, now: Optional[float] = None) -> dict:
        d = asdict(self)
        d["direction"] = self.direction.value
        d["status"] = self.status.value
        d["start_time_iso"] = _iso(self.start_time)
        d["end_time_iso"] = _iso(self.end_time)

        if self.is_active:
            d["is_currently_winning"] = self.is_currently_winning
            d["expires_at_iso"] = _iso(self.expires_at)
            if now is not None:
                d["elapsed"] = round(self.elapsed(now), 3)
                d["time_remaining"] = round(self.time_remaining(now), 3)
                d["progress"] = round(self.progress(now), 4)
        else:
            d["pnl"] = round(self.pnl, 2)
        return d


@dataclass
class TradeSettled:
    """Emitted once per trade when it leaves the active set"""
    trade: Trade

    def to_dict(self) -> dict:
        return {"type": "trade_settled", "trade": self.trade.to_dict()}


@dataclass
class TradeStats:
    """Aggregates over settled trades"""
    net_pnl: float = 0.0
    win_rate: float = 0.0           # Percent, 0 when nothing has settled
    total_trades: int = 0
    won: int = 0
    lost: int = 0
    total_staked: float = 0.0
    total_payout: float = 0.0
    active_count: int = 0

    def to_dict(self) -> dict:
        return {
            "net_pnl": round(self.net_pnl, 2),
            "win_rate": round(self.win_rate, 1),
            "total_trades": self.total_trades,
            "won": self.won,
            "lost": self.lost,
            "total_staked": round(self.total_staked, 2),
            "total_payout": round(self.total_payout, 2),
            "active_count": self.active_count,
        }
