"""
Trade Setup Service Implementation

Builds ATR-sized long/short scenarios around support and resistance,
clamps them to the recent range and keeps the one that clears the symbol's
minimum reward:risk.
PURE PYTHON - All rules are deterministic and auditable.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from marketcore.core.config import settings
from marketcore.schemas.indicators import Recommendation
from marketcore.schemas.market import Bar
from marketcore.schemas.trade import TradeDirection, TradeSetup
from marketcore.services.data_ingestion.symbols import min_risk_reward, round_price
from marketcore.services.indicators.calculations import (
    OHLCVData,
    atr,
    get_last_valid,
    range_extremes,
)
from marketcore.services.risk.interface import TradeSetupInput, TradeSetupServiceInterface

logger = logging.getLogger(__name__)

BASIS = "ATR + S/R (clamped)"
ATR_PERIOD = 14

# Multiples of ATR
ENTRY_OFFSET = 0.25
FAR_FROM_LEVEL = 1.5
FAR_STOP = 1.0
NEAR_STOP = 0.5
MIN_TARGET = 2.0
CLAMP_MARGIN = 0.2

# Float slack when an unclamped target sits exactly on the threshold
RR_TOLERANCE = 1e-9


@dataclass
class Scenario:
    direction: TradeDirection
    entry: float
    stop_loss: float
    take_profit: float
    risk_reward: float


def clamp(value: float, lo: float, hi: float) -> float:
    if value < lo:
        return lo
    if value > hi:
        return hi
    return value


def effective_atr(bars: list[Bar], period: int = ATR_PERIOD) -> Optional[float]:
    """ATR(period), or the last bar's range when history is too short."""
    data = OHLCVData.from_bars(bars)
    value = get_last_valid(atr(data.highs, data.lows, data.closes, period))
    if value is None:
        last = bars[-1]
        value = abs(last.high - last.low)
    return value


def long_scenario(
    price: float, support: float, a: float, rr_min: float, min_low: float, max_high: float
) -> Scenario:
    pad = CLAMP_MARGIN * a
    entry = max(price, support + ENTRY_OFFSET * a)
    if price - support > FAR_FROM_LEVEL * a:
        stop = entry - FAR_STOP * a
    else:
        stop = min(entry - NEAR_STOP * a, support - NEAR_STOP * a)
    target = entry + max(rr_min * (entry - stop), MIN_TARGET * a)

    stop = clamp(stop, min_low - pad, entry - pad)
    target = clamp(target, entry + pad, max_high + pad)

    risk = entry - stop
    rr = (target - entry) / (risk if risk > 0 else 1e-9)
    return Scenario(TradeDirection.BUY, entry, stop, target, rr)


def short_scenario(
    price: float, resistance: float, a: float, rr_min: float, min_low: float, max_high: float
) -> Scenario:
    pad = CLAMP_MARGIN * a
    entry = min(price, resistance - ENTRY_OFFSET * a)
    if resistance - price > FAR_FROM_LEVEL * a:
        stop = entry + FAR_STOP * a
    else:
        stop = max(entry + NEAR_STOP * a, resistance + NEAR_STOP * a)
    target = entry - max(rr_min * (stop - entry), MIN_TARGET * a)

    stop = clamp(stop, entry + pad, max_high + pad)
    target = clamp(target, min_low - pad, entry - pad)

    risk = stop - entry
    rr = (entry - target) / (risk if risk > 0 else 1e-9)
    return Scenario(TradeDirection.SELL, entry, stop, target, rr)


def pick_scenario(
    scenarios: list[Scenario], recommendation: Recommendation, rr_min: float
) -> Optional[Scenario]:
    """Bias-matching scenario if it qualifies, else the best qualifying one."""
    preferred = {
        Recommendation.BUY: TradeDirection.BUY,
        Recommendation.SELL: TradeDirection.SELL,
    }.get(recommendation)

    qualifying = [s for s in scenarios if s.risk_reward >= rr_min - RR_TOLERANCE]
    if not qualifying:
        return None

    matching = [s for s in qualifying if s.direction == preferred]
    pool = matching or qualifying
    return max(pool, key=lambda s: s.risk_reward)


class TradeSetupService(TradeSetupServiceInterface):
    """
    Trade Setup Engine.

    Produces at most one setup. Returns None (never raises) when the
    history is too short, ATR is unusable, or no scenario qualifies.
    """

    def __init__(self, min_bars: Optional[int] = None, lookback: Optional[int] = None):
        self.min_bars = min_bars if min_bars is not None else settings.min_bars_for_setup
        self.lookback = lookback if lookback is not None else settings.sr_lookback_bars

    @property
    def name(self) -> str:
        return "TradeSetupService"

    async def execute(self, input_data: TradeSetupInput) -> Optional[TradeSetup]:
        """Build the best qualifying trade setup."""
        bars = input_data.bars
        symbol = input_data.symbol

        if len(bars) < self.min_bars:
            logger.debug(f"{symbol}: {len(bars)} bars, need {self.min_bars} for a setup")
            return None

        price = (
            input_data.current_price
            if input_data.current_price is not None
            else bars[-1].close
        )

        a = effective_atr(bars)
        if a is None or not a > 0:
            return None

        rr_min = min_risk_reward(symbol)
        min_low, max_high = range_extremes(OHLCVData.from_bars(bars), self.lookback)

        scenarios: list[Scenario] = []
        if input_data.support is not None:
            scenarios.append(
                long_scenario(price, input_data.support, a, rr_min, min_low, max_high)
            )
        if input_data.resistance is not None:
            scenarios.append(
                short_scenario(price, input_data.resistance, a, rr_min, min_low, max_high)
            )

        pick = pick_scenario(scenarios, input_data.recommendation, rr_min)
        if pick is None:
            logger.info(f"{symbol}: no scenario meets minimum RR {rr_min}")
            return None

        return TradeSetup(
            direction=pick.direction,
            entry=round_price(symbol, pick.entry),
            stop_loss=round_price(symbol, pick.stop_loss),
            take_profit=round_price(symbol, pick.take_profit),
            risk_reward=round(pick.risk_reward, 2),
            confidence=input_data.confidence,
            basis=BASIS,
            current_price=round_price(symbol, price),
            atr14=round_price(symbol, a),
        )

    async def health_check(self) -> bool:
        """Trade setup service is always healthy (pure computation)."""
        return True


# Singleton instance
_service_instance: Optional[TradeSetupService] = None


def get_trade_setup_service() -> TradeSetupService:
    """Get or create trade setup service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = TradeSetupService()
    return _service_instance
