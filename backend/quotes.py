"""
Simulated quote board.

Stands in for the real-time price feed. Each asset's quote follows a
mean-reverting random walk around its base price:

    change = U * volatility * base + (base - last) * mean_reversion
    price  = max(last + change, base * floor)

The board keeps a rolling window of recent points per asset for charting and
hands out the latest quote as the start price of a new trade. The engine only
simulates movement away from that seed, it never checks it against a market.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, asdict
from typing import Optional, Callable, Any, Dict, List

from config import (
    ASSETS, QUOTE_VOLATILITY, QUOTE_MEAN_REVERSION, QUOTE_FLOOR,
    QUOTE_INTERVAL_SEC, QUOTE_HISTORY_SIZE, price_precision,
)
from errors import InvalidParameter
from price_process import RandomSource, UniformNoise
from trade_clock import dispatch_callback

logger = logging.getLogger(__name__)


def next_quote(
    last_price: float,
    base_price: float,
    draw: float,
    volatility: float = QUOTE_VOLATILITY,
    mean_reversion: float = QUOTE_MEAN_REVERSION,
    floor: float = QUOTE_FLOOR,
) -> float:
    """One step of the quote walk"""
    change = draw * volatility * base_price + (base_price - last_price) * mean_reversion
    return max(last_price + change, base_price * floor)


@dataclass
class PricePoint:
    """One point of an asset's quote series"""
    timestamp: float
    price: float

    def to_dict(self) -> dict:
        return asdict(self)


class QuoteBoard:
    """
    Mean-reverting quote ticker for the asset catalog.

    Args:
        random_source: Callable returning a draw in [-1, 1]. Defaults to UniformNoise().
        assets: Catalog of {symbol: {"base_price": ...}}. Defaults to config.ASSETS.
        time_fn: Clock function returning Unix seconds
        history_size: Points kept per asset
        interval: Seconds between ticker steps
        warmup: Pre-fill each series with history_size back-dated points
    """

    def __init__(
        self,
        random_source: Optional[RandomSource] = None,
        assets: Optional[dict] = None,
        time_fn: Callable[[], float] = time.time,
        history_size: int = QUOTE_HISTORY_SIZE,
        interval: float = QUOTE_INTERVAL_SEC,
        warmup: bool = True,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self.random_source: RandomSource = random_source or UniformNoise()
        self.assets = assets if assets is not None else ASSETS
        self.time_fn = time_fn
        self.interval = interval

        self._series: Dict[str, deque] = {
            symbol: deque(maxlen=history_size) for symbol in self.assets
        }
        if warmup:
            self._warmup(history_size)

    def _warmup(self, points: int) -> None:
        now = self.time_fn()
        for symbol in self.assets:
            for i in range(points - 1, -1, -1):
                self.step(symbol, timestamp=now - i * self.interval)

    def _info(self, asset: str) -> dict:
        info = self.assets.get(asset)
        if info is None:
            raise InvalidParameter(f"Unknown asset: {asset}")
        return info

    @property
    def symbols(self) -> List[str]:
        return list(self.assets.keys())

    # -------------------------------------------------------------------------
    # TICKER
    # -------------------------------------------------------------------------

    def step(self, asset: str, timestamp: Optional[float] = None) -> float:
        """Advance one asset's quote and append it to the series"""
        base = self._info(asset)["base_price"]
        series = self._series[asset]
        last = series[-1].price if series else base

        price = round(next_quote(last, base, self.random_source()), price_precision(asset))
        series.append(PricePoint(timestamp=self.time_fn() if timestamp is None else timestamp, price=price))
        return price

    def advance(self) -> Dict[str, float]:
        """Step every asset once"""
        now = self.time_fn()
        return {symbol: self.step(symbol, timestamp=now) for symbol in self.assets}

    async def run(self, on_update: Optional[Callable[[Dict[str, float]], Any]] = None) -> None:
        """Step all quotes every interval until cancelled"""
        logger.info(f"QuoteBoard ticker started (interval {self.interval}s)")
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    prices = self.advance()
                except Exception as e:
                    logger.error(f"Quote update failed: {type(e).__name__}: {e}")
                    continue

                if on_update:
                    dispatch_callback(on_update, prices)
        finally:
            logger.info("QuoteBoard ticker stopped")

    # -------------------------------------------------------------------------
    # VIEWS
    # -------------------------------------------------------------------------

    def quote(self, asset: str) -> float:
        """Latest quote for an asset, rounded to its display precision"""
        self._info(asset)
        series = self._series[asset]
        if not series:
            return self.step(asset)
        return series[-1].price

    def change(self, asset: str) -> float:
        """Difference between the last two points (0 with fewer than two)"""
        self._info(asset)
        series = self._series[asset]
        if len(series) < 2:
            return 0.0
        return round(series[-1].price - series[-2].price, price_precision(asset))

    def history(self, asset: str) -> List[dict]:
        """Recent quote points, oldest first"""
        self._info(asset)
        return [p.to_dict() for p in self._series[asset]]

    def to_dict(self) -> dict:
        return {
            symbol: {
                "name": info.get("name", symbol),
                "base_price": info["base_price"],
                "precision": price_precision(symbol),
            }
            for symbol, info in self.assets.items()
        }
