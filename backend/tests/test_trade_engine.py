"""
Tests for the TradeEngine composition root (trade_engine.py).

Tests cover:
- Admission and parameter validation
- Unique ids
- On-demand expiry checks
- TradeSettled notifications
- Display views (time remaining, progress clamping)
"""
import pytest
from unittest.mock import MagicMock

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import EngineConfig
from errors import InvalidParameter
from price_process import FixedNoise
from trade_models import Direction, TradeStatus, TradeSettled


class TestOpenTrade:
    """Tests for open_trade()."""

    def test_open_sets_initial_fields(self, engine, fake_clock, sample_trade_args):
        trade = engine.open_trade(**sample_trade_args)

        assert trade.status is TradeStatus.ACTIVE
        assert trade.direction is Direction.UP
        assert trade.start_time == fake_clock.now
        assert trade.current_price == 50.0
        assert trade.end_price is None
        assert trade.end_time is None
        assert trade.payout is None
        assert engine.ledger.is_active(trade.id)

    def test_ids_are_unique(self, engine, sample_trade_args):
        ids = {engine.open_trade(**sample_trade_args).id for _ in range(100)}
        assert len(ids) == 100

    def test_direction_accepts_enum_and_any_case(self, engine, sample_trade_args):
        assert engine.open_trade(**{**sample_trade_args, "direction": Direction.DOWN}).direction is Direction.DOWN
        assert engine.open_trade(**{**sample_trade_args, "direction": "DOWN"}).direction is Direction.DOWN

    @pytest.mark.parametrize("field,value", [
        ("amount", 0),
        ("amount", -10),
        ("amount", "abc"),
        ("amount", float("nan")),
        ("amount", True),
        ("duration", 0),
        ("duration", -5),
        ("duration", None),
        ("start_price", 0),
        ("start_price", -1.0),
        ("direction", "sideways"),
        ("direction", None),
        ("asset", ""),
        ("asset", None),
    ])
    def test_invalid_parameters_rejected(self, engine, sample_trade_args, field, value):
        with pytest.raises(InvalidParameter):
            engine.open_trade(**{**sample_trade_args, field: value})
        assert engine.ledger.active_count == 0

    def test_invalid_parameter_is_value_error(self, engine, sample_trade_args):
        with pytest.raises(ValueError):
            engine.open_trade(**{**sample_trade_args, "amount": -1})

    def test_unknown_asset_with_catalog(self, make_engine, sample_trade_args):
        engine = make_engine(enabled_assets=["BTC/USDT"])
        with pytest.raises(InvalidParameter, match="Unknown asset"):
            engine.open_trade(**sample_trade_args)
        assert engine.open_trade(**{**sample_trade_args, "asset": "BTC/USDT"}).asset == "BTC/USDT"

    def test_product_rules(self, make_engine, sample_trade_args):
        engine = make_engine(config=EngineConfig.product_defaults())
        args = {**sample_trade_args, "asset": "GOLD"}

        with pytest.raises(InvalidParameter, match="Minimum"):
            engine.open_trade(**{**args, "amount": 5, "duration": 60})
        with pytest.raises(InvalidParameter, match="Duration"):
            engine.open_trade(**{**args, "duration": 45})

        trade = engine.open_trade(**{**args, "duration": 60})
        assert trade.duration == 60

    def test_on_trade_opened_callback(self, engine, sample_trade_args):
        engine.on_trade_opened = MagicMock()
        trade = engine.open_trade(**sample_trade_args)
        engine.on_trade_opened.assert_called_once()
        assert engine.on_trade_opened.call_args[0][0].id == trade.id


class TestCheckExpiry:
    """On-demand expiry uses the same path as the clock."""

    def test_not_expired_returns_none(self, engine, fake_clock, sample_trade_args):
        trade = engine.open_trade(**sample_trade_args)
        fake_clock.advance(3)
        assert engine.check_expiry(trade.id) is None
        assert engine.get_trade(trade.id).is_active

    def test_expired_settles(self, engine, fake_clock, sample_trade_args):
        trade = engine.open_trade(**sample_trade_args)
        fake_clock.advance(5)

        settled = engine.check_expiry(trade.id)
        assert settled is not None
        assert settled.status.is_terminal
        assert settled.end_time == fake_clock.now

    def test_check_then_tick_settles_once(self, engine, fake_clock, sample_trade_args):
        listener = MagicMock()
        engine.subscribe(listener)
        trade = engine.open_trade(**sample_trade_args)
        fake_clock.advance(6)

        first = engine.check_expiry(trade.id)
        assert engine.tick().settled == []
        assert engine.check_expiry(trade.id) is None

        assert listener.call_count == 1
        assert engine.get_trade(trade.id).end_price == first.end_price

    def test_unknown_trade(self, engine):
        assert engine.check_expiry("missing") is None


class TestNotifications:
    """TradeSettled events."""

    def test_listener_receives_settled_trade(self, make_engine, fake_clock, sample_trade_args):
        engine = make_engine(FixedNoise(1.0))
        events = []
        engine.subscribe(events.append)

        trade = engine.open_trade(**sample_trade_args)
        fake_clock.advance(5)
        engine.tick()

        assert len(events) == 1
        assert isinstance(events[0], TradeSettled)
        assert events[0].trade.id == trade.id
        assert events[0].trade.payout == pytest.approx(185.0)

    def test_broken_listener_does_not_block_others(self, engine, fake_clock, sample_trade_args):
        broken = MagicMock(side_effect=RuntimeError("listener down"))
        good = MagicMock()
        engine.subscribe(broken)
        engine.subscribe(good)

        trade = engine.open_trade(**sample_trade_args)
        fake_clock.advance(5)
        result = engine.tick()

        assert result.failed == 0
        good.assert_called_once()
        assert engine.get_trade(trade.id).status.is_terminal

    def test_unsubscribe(self, engine, fake_clock, sample_trade_args):
        listener = MagicMock()
        engine.subscribe(listener)
        engine.unsubscribe(listener)

        engine.open_trade(**sample_trade_args)
        fake_clock.advance(5)
        engine.tick()
        listener.assert_not_called()


class TestViews:
    """Display views."""

    def test_progress_and_remaining(self, engine, fake_clock, sample_trade_args):
        engine.open_trade(**sample_trade_args)
        fake_clock.advance(2)

        row = engine.active_view()[0]
        assert row["elapsed"] == pytest.approx(2.0)
        assert row["time_remaining"] == pytest.approx(3.0)
        assert row["progress"] == pytest.approx(0.4)
        assert row["potential_payout"] == pytest.approx(185.0)

    def test_active_view_has_expiry_time(self, engine, fake_clock, sample_trade_args):
        trade = engine.open_trade(**sample_trade_args)
        row = engine.active_view()[0]

        assert trade.expires_at == fake_clock.now + 5
        assert row["expires_at_iso"].startswith("2026-01-07T18:45:05")

    def test_late_view_is_clamped(self, engine, fake_clock, sample_trade_args):
        """Before the late tick settles it, progress never exceeds 100%."""
        engine.open_trade(**sample_trade_args)
        fake_clock.advance(12)

        row = engine.active_view()[0]
        assert row["progress"] == 1.0
        assert row["time_remaining"] == 0.0

    def test_history_view(self, engine, fake_clock, sample_trade_args):
        engine.open_trade(**sample_trade_args)
        fake_clock.advance(5)
        engine.tick()

        rows = engine.history_view()
        assert len(rows) == 1
        assert rows[0]["status"] in ("won", "lost")
        assert "pnl" in rows[0]
        assert "progress" not in rows[0]

    def test_summary(self, engine, fake_clock, sample_trade_args):
        engine.open_trade(**sample_trade_args)
        engine.open_trade(**{**sample_trade_args, "duration": 60})
        fake_clock.advance(5)
        engine.tick()

        summary = engine.get_summary()
        assert summary["stats"]["total_trades"] == 1
        assert len(summary["active"]) == 1
        assert len(summary["recent_trades"]) == 1
        assert summary["by_asset"][0]["asset"] == "X"
        assert summary["clock_running"] is False
