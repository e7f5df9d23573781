"""
Configuration for the binary up/down contract engine.
Contains payout and volatility constants, the asset catalog and engine parameters.
"""

import os
from dataclasses import dataclass, asdict
from typing import Optional

# ============================================================================
# CONTRACT CONSTANTS
# ============================================================================

PAYOUT_MULTIPLIER = 1.85  # Stake back plus 85% profit on a win

TICK_VOLATILITY = 0.001  # Live price noise while a trade is running
SETTLEMENT_VOLATILITY = 0.002  # Noise for the final settlement price

TICK_INTERVAL_SEC = 1.0

# Product rules from the trade ticket
MIN_TRADE_AMOUNT = 10.0
ALLOWED_DURATIONS = [30, 60, 120, 300]

DURATION_LABELS = {
    30: "30 seconds",
    60: "1 minute",
    120: "2 minutes",
    300: "5 minutes",
}


# ============================================================================
# ASSET CATALOG
# ============================================================================

# Base price and display name of each tradable asset
ASSETS = {
    "BTC/USDT": {"name": "Bitcoin vs Tether", "base_price": 101137.68},
    "EUR/USD": {"name": "Euro vs US Dollar", "base_price": 1.0850},
    "GBP/USD": {"name": "British Pound vs US Dollar", "base_price": 1.2750},
    "USD/JPY": {"name": "US Dollar vs Japanese Yen", "base_price": 149.50},
    "ETH/USD": {"name": "Ethereum vs US Dollar", "base_price": 2650.0},
    "GOLD": {"name": "Gold Spot Price", "base_price": 2035.0},
}

# Quote ticker (mean-reverting random walk around the base price)
QUOTE_VOLATILITY = 0.001  # Max step as a fraction of the base price
QUOTE_MEAN_REVERSION = 0.05  # Fraction of the distance to base recovered per step
QUOTE_FLOOR = 0.95  # Quotes never fall below this fraction of the base price
QUOTE_INTERVAL_SEC = 2.0
QUOTE_HISTORY_SIZE = 50


def price_precision(asset: str) -> int:
    """Decimal places used when displaying a price for this asset"""
    return 2 if "JPY" in asset else 4


# ============================================================================
# ENGINE PARAMETERS
# ============================================================================

@dataclass
class EngineConfig:
    """Trade engine configuration"""
    tick_interval_sec: float = TICK_INTERVAL_SEC
    payout_multiplier: float = PAYOUT_MULTIPLIER
    tick_volatility: float = TICK_VOLATILITY
    settlement_volatility: float = SETTLEMENT_VOLATILITY

    # Admission rules (None / 0 = only the basic positivity checks)
    min_amount: float = 0.0
    allowed_durations: Optional[list] = None

    # Assets accepted by open_trade (None = any symbol)
    enabled_assets: Optional[list] = None

    # Paper wallet used by the server and the simulator
    starting_balance: float = 10000.0

    # Quote ticker cadence used by the server
    quote_interval_sec: float = QUOTE_INTERVAL_SEC

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    @classmethod
    def product_defaults(cls, **overrides) -> "EngineConfig":
        """Config with the minimum stake and fixed duration menu enabled"""
        params = {
            "min_amount": MIN_TRADE_AMOUNT,
            "allowed_durations": list(ALLOWED_DURATIONS),
            "enabled_assets": list(ASSETS.keys()),
        }
        params.update(overrides)
        return cls(**params)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load config from environment variables"""
        assets = os.getenv("ENABLED_ASSETS")
        return cls.product_defaults(
            tick_interval_sec=float(os.getenv("TICK_INTERVAL_SEC", TICK_INTERVAL_SEC)),
            payout_multiplier=float(os.getenv("PAYOUT_MULTIPLIER", PAYOUT_MULTIPLIER)),
            min_amount=float(os.getenv("MIN_TRADE_AMOUNT", MIN_TRADE_AMOUNT)),
            starting_balance=float(os.getenv("STARTING_BALANCE", 10000.0)),
            quote_interval_sec=float(os.getenv("QUOTE_INTERVAL_SEC", QUOTE_INTERVAL_SEC)),
            enabled_assets=[a.strip() for a in assets.split(",") if a.strip()] if assets else list(ASSETS.keys()),
        )


