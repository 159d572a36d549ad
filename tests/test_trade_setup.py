"""Tests for the ATR + support/resistance trade setup engine."""
import pytest

from conftest import create_test_bars
from marketcore.schemas.indicators import Recommendation
from marketcore.schemas.trade import TradeDirection
from marketcore.services.risk.interface import TradeSetupInput
from marketcore.services.risk.service import (
    TradeSetupService,
    effective_atr,
    long_scenario,
    pick_scenario,
)


@pytest.fixture
def service():
    return TradeSetupService(min_bars=20, lookback=50)


class TestLongSetup:
    async def test_long_from_support(self, service, setup_bars):
        setup = await service.execute(TradeSetupInput(
            symbol="XAUUSD.FOREX",
            bars=setup_bars,
            support=1980.0,
            resistance=None,
            recommendation=Recommendation.BUY,
            confidence=70,
            current_price=1985.0,
        ))
        assert setup is not None
        assert setup.direction == TradeDirection.BUY
        assert setup.entry == 1985.0
        assert setup.stop_loss == 1975.0
        assert setup.take_profit == 2005.0
        assert setup.risk_reward == 2.0
        assert setup.atr14 == 10.0
        assert setup.confidence == 70
        assert setup.basis == "ATR + S/R (clamped)"
        assert setup.stop_loss < setup.entry < setup.take_profit

    async def test_target_clamped_below_threshold(self, service, setup_bars):
        # Price far above support: stop 1990, target clamped to 2007, rr 0.7
        setup = await service.execute(TradeSetupInput(
            symbol="XAUUSD.FOREX",
            bars=setup_bars,
            support=1980.0,
            resistance=None,
            recommendation=Recommendation.BUY,
            current_price=2000.0,
        ))
        assert setup is None

    async def test_fx_uses_lower_threshold(self, service, setup_bars):
        request = dict(
            bars=setup_bars,
            support=1980.0,
            resistance=None,
            recommendation=Recommendation.BUY,
            current_price=1987.0,
        )
        assert await service.execute(TradeSetupInput(symbol="XAUUSD.FOREX", **request)) is None

        setup = await service.execute(TradeSetupInput(symbol="EURUSD.FOREX", **request))
        assert setup is not None
        assert setup.risk_reward == 1.67
        assert setup.take_profit == 2007.0


class TestShortSetup:
    async def test_short_from_resistance(self, service, setup_bars):
        setup = await service.execute(TradeSetupInput(
            symbol="XAUUSD.FOREX",
            bars=setup_bars,
            support=None,
            resistance=2000.0,
            recommendation=Recommendation.SELL,
            current_price=1995.0,
        ))
        assert setup is not None
        assert setup.direction == TradeDirection.SELL
        assert setup.entry == 1995.0
        assert setup.stop_loss == 2005.0
        assert setup.take_profit == 1975.0
        assert setup.risk_reward == 2.0
        assert setup.take_profit < setup.entry < setup.stop_loss


class TestSelection:
    async def test_qualifying_scenario_beats_bias(self, service, setup_bars):
        setup = await service.execute(TradeSetupInput(
            symbol="XAUUSD.FOREX",
            bars=setup_bars,
            support=1980.0,
            resistance=2000.0,
            recommendation=Recommendation.SELL,
            current_price=1985.0,
        ))
        assert setup.direction == TradeDirection.BUY

    async def test_insufficient_bars(self, service, setup_bars):
        setup = await service.execute(TradeSetupInput(
            symbol="XAUUSD.FOREX",
            bars=setup_bars[:19],
            support=1980.0,
            resistance=2000.0,
        ))
        assert setup is None

    async def test_no_levels(self, service, setup_bars):
        setup = await service.execute(TradeSetupInput(
            symbol="XAUUSD.FOREX", bars=setup_bars, support=None, resistance=None,
        ))
        assert setup is None


def test_effective_atr_falls_back_to_last_range():
    assert effective_atr(create_test_bars([100.0] * 5, spread=2.0)) == 4.0


def test_rr_exactly_at_fx_threshold_qualifies():
    # Unclamped target: rr is 1.5 up to float error
    scenario = long_scenario(1.0863, 1.0850, 0.0010, 1.5, 1.0, 2.0)
    assert scenario.entry == 1.0863
    assert scenario.stop_loss == pytest.approx(1.0845)
    assert scenario.take_profit == pytest.approx(1.089)
    assert scenario.risk_reward == pytest.approx(1.5)
    assert pick_scenario([scenario], Recommendation.BUY, 1.5) is scenario
