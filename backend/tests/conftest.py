"""
Pytest fixtures for the test suite.
"""
import pytest
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import EngineConfig
from paper_wallet import PaperWallet
from price_process import FixedNoise
from trade_engine import TradeEngine


START_TIME = 1767811500.0


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class ScriptedNoise:
    """Returns scripted draws in order, repeating the last one. Exceptions in the script are raised."""

    def __init__(self, *draws):
        self.draws = list(draws)
        self.calls = 0

    def __call__(self) -> float:
        index = min(self.calls, len(self.draws) - 1)
        self.calls += 1
        draw = self.draws[index]
        if isinstance(draw, Exception):
            raise draw
        return draw


@pytest.fixture
def fake_clock():
    """Clock frozen at START_TIME until advanced."""
    return FakeClock()


@pytest.fixture
def make_engine(fake_clock):
    """Build an engine with a given randomness source on the fake clock."""
    def _make(random_source=None, config=None, **overrides):
        config = config or EngineConfig(**overrides)
        return TradeEngine(
            config=config,
            random_source=random_source if random_source is not None else FixedNoise(0.5),
            time_fn=fake_clock,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    """Engine whose draws are always +0.5 (prices drift up)."""
    return make_engine()


@pytest.fixture
def wallet(engine, fake_clock):
    """Paper wallet with 1000 attached to the engine."""
    w = PaperWallet(starting_balance=1000.0, time_fn=fake_clock)
    w.attach(engine)
    return w


@pytest.fixture
def sample_trade_args():
    """Scenario trade: X, up, 100 at 50.0000 for 5 seconds."""
    return {
        "asset": "X",
        "direction": "up",
        "amount": 100.0,
        "start_price": 50.0,
        "duration": 5,
    }
