"""
Synthetic price process for binary contracts.

Every sample is a multiplicative perturbation of the trade's original start
price:

    price = reference_price * (1 + U * volatility),  U in [-1, 1)

The process is memoryless. Live samples never compound on the previous live
sample, they always perturb the start price again. Two volatility regimes are
used: a small one for the live price while the trade runs and a larger one for
the single settlement draw at expiry.
"""

import math
import random
import logging
from typing import Callable, Optional

from config import TICK_VOLATILITY, SETTLEMENT_VOLATILITY
from errors import RandomnessSourceFailure

logger = logging.getLogger(__name__)

# A randomness source returns one draw in [-1, 1] per call
RandomSource = Callable[[], float]


class UniformNoise:
    """Seedable uniform draws in [-1, 1)."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = random.Random(seed)

    def __call__(self) -> float:
        return self._rng.random() * 2.0 - 1.0


class FixedNoise:
    """Always returns the same draw. Used to pin outcomes in tests and demos."""

    def __init__(self, value: float):
        self.value = value

    def __call__(self) -> float:
        return self.value


def perturb(reference_price: float, volatility: float, draw: float) -> float:
    """Apply one noise draw to a reference price"""
    return reference_price * (1.0 + draw * volatility)


class PriceProcess:
    """
    Produces interim and settlement price samples.

    Args:
        random_source: Callable returning a draw in [-1, 1]. Defaults to UniformNoise().
        tick_volatility: Volatility for live samples
        settlement_volatility: Volatility for the final settlement sample
    """

    def __init__(
        self,
        random_source: Optional[RandomSource] = None,
        tick_volatility: float = TICK_VOLATILITY,
        settlement_volatility: float = SETTLEMENT_VOLATILITY,
    ):
        for name, vol in (("tick_volatility", tick_volatility), ("settlement_volatility", settlement_volatility)):
            if not 0 <= vol < 1:
                raise ValueError(f"{name} must be in [0, 1), got {vol}")

        self.random_source: RandomSource = random_source or UniformNoise()
        self.tick_volatility = tick_volatility
        self.settlement_volatility = settlement_volatility

    def _draw(self) -> float:
        try:
            u = float(self.random_source())
        except Exception as e:
            raise RandomnessSourceFailure(f"Randomness source raised {type(e).__name__}: {e}") from e

        if not math.isfinite(u) or not -1.0 <= u <= 1.0:
            raise RandomnessSourceFailure(f"Randomness source returned {u!r}, expected a value in [-1, 1]")
        return u

    def sample_interim(self, reference_price: float) -> float:
        """Live price while the trade is still running"""
        return perturb(reference_price, self.tick_volatility, self._draw())

    def sample_settlement(self, reference_price: float) -> float:
        """Final price drawn once at expiry"""
        return perturb(reference_price, self.settlement_volatility, self._draw())
