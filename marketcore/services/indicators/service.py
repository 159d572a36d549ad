"""
Indicator Engine Service Implementation

Computes RSI, SMA, EMA and MACD locally from bars, or fetches them
pre-computed from the provider for long timeframes. Also derives pivot
support/resistance and the trend/recommendation vote.
"""

import asyncio
import logging
import math
from typing import Any, Optional

from marketcore.core.config import settings
from marketcore.schemas.market import Bar
from marketcore.schemas.indicators import (
    IndicatorRequest,
    IndicatorSet,
    IndicatorSource,
    MACDData,
    Recommendation,
    SupportResistance,
    TrendDirection,
    TrendSignal,
)
from marketcore.services.base import PartialIndicatorFailure, UpstreamUnavailableError
from marketcore.services.indicators.interface import IndicatorResult, IndicatorServiceInterface
from marketcore.services.indicators.calculations import (
    OHLCVData,
    ema,
    get_last_valid,
    macd,
    rsi,
    sma,
    support_resistance,
)

logger = logging.getLogger(__name__)


# field -> (provider function, query params, value key)
REMOTE_INDICATORS: dict[str, tuple[str, dict, Optional[str]]] = {
    "rsi": ("rsi", {"period": 14}, "rsi"),
    "sma20": ("sma", {"period": 20}, "sma"),
    "sma50": ("sma", {"period": 50}, "sma"),
    "ema20": ("ema", {"period": 20}, "ema"),
    "macd": ("macd", {"fast_period": 12, "slow_period": 26, "signal_period": 9}, None),
}

MAX_CONFIDENCE = 85


def _finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def latest_entry(payload: Any) -> Optional[dict]:
    """Most recent row of an indicator series (by `date`), or the object itself."""
    if isinstance(payload, dict):
        return payload
    if not isinstance(payload, list):
        return None
    rows = [row for row in payload if isinstance(row, dict)]
    if not rows:
        return None
    if all(isinstance(row.get("date"), str) for row in rows):
        return max(rows, key=lambda row: row["date"])
    return rows[-1]


class IndicatorService(IndicatorServiceInterface):
    """
    Indicator Engine Service.

    Local values are None whenever the history is too short. A failed remote
    indicator degrades only its own field.
    """

    def __init__(self, client=None, remote_timeframes: Optional[list[str]] = None):
        self._client = client
        self.remote_timeframes = set(
            remote_timeframes if remote_timeframes is not None
            else settings.remote_indicator_timeframes
        )

    @property
    def client(self):
        if self._client is None:
            from marketcore.services.data_ingestion.eodhd_adapter import get_eodhd_client
            self._client = get_eodhd_client()
        return self._client

    @property
    def name(self) -> str:
        return "IndicatorService"

    async def execute(self, input_data: IndicatorRequest) -> IndicatorResult:
        """Remote indicators for configured timeframes, local otherwise."""
        request = await self.validate_input(input_data)

        use_remote = (
            request.timeframe.value in self.remote_timeframes
            and request.from_date is not None
            and request.to_date is not None
        )

        if use_remote:
            indicators, warnings = await self.fetch_remote(
                request.symbol, request.from_date, request.to_date
            )
            return IndicatorResult(
                indicators=indicators,
                source=IndicatorSource.REMOTE,
                warnings=warnings,
            )

        return IndicatorResult(
            indicators=self.compute_local(request.bars),
            source=IndicatorSource.LOCAL,
        )

    # =========================================================================
    # LOCAL
    # =========================================================================

    def compute_local(self, bars: list[Bar]) -> IndicatorSet:
        """Compute RSI(14), SMA(20), SMA(50), EMA(20) and MACD(12,26,9)."""
        if not bars:
            return IndicatorSet()

        closes = OHLCVData.from_bars(bars).closes

        macd_line, signal_line, histogram = macd(closes, 12, 26, 9)
        macd_value = get_last_valid(macd_line)
        macd_data = None
        if macd_value is not None:
            macd_data = MACDData(
                macd=macd_value,
                signal=get_last_valid(signal_line),
                histogram=get_last_valid(histogram),
            )

        return IndicatorSet(
            rsi=get_last_valid(rsi(closes, 14)),
            sma20=get_last_valid(sma(closes, 20)),
            sma50=get_last_valid(sma(closes, 50)),
            ema20=get_last_valid(ema(closes, 20)),
            macd=macd_data,
        )

    # =========================================================================
    # REMOTE
    # =========================================================================

    async def fetch_remote(
        self, symbol: str, from_date: str, to_date: str
    ) -> tuple[IndicatorSet, list[str]]:
        """Fetch all indicators concurrently; failures degrade single fields."""
        names = list(REMOTE_INDICATORS)
        outcomes = await asyncio.gather(
            *(self._fetch_guarded(symbol, key, from_date, to_date) for key in names)
        )

        values: dict[str, Any] = {}
        warnings: list[str] = []
        for key, (value, warning) in zip(names, outcomes):
            values[key] = value
            if warning:
                warnings.append(warning)

        return IndicatorSet(**values), warnings

    async def _fetch_guarded(
        self, symbol: str, key: str, from_date: str, to_date: str
    ) -> tuple[Any, Optional[str]]:
        try:
            return await self._fetch_one(symbol, key, from_date, to_date), None
        except PartialIndicatorFailure as e:
            logger.warning(f"{symbol}: {e.message}")
            return None, e.message

    async def _fetch_one(self, symbol: str, key: str, from_date: str, to_date: str) -> Any:
        function, params, value_key = REMOTE_INDICATORS[key]
        try:
            payload = await self.client.get_technical(
                symbol, function, from_date, to_date, **params
            )
        except UpstreamUnavailableError as e:
            raise PartialIndicatorFailure(self.name, key, e.message) from e

        row = latest_entry(payload)
        if row is None:
            raise PartialIndicatorFailure(self.name, key, "empty response")

        if key == "macd":
            data = MACDData(
                macd=_finite(row.get("macd")),
                signal=_finite(row.get("signal")),
                histogram=_finite(row.get("divergence", row.get("histogram"))),
            )
            if data.macd is None and data.signal is None and data.histogram is None:
                raise PartialIndicatorFailure(self.name, key, "no numeric values")
            return data

        value = _finite(row.get(value_key))
        if value is None:
            raise PartialIndicatorFailure(self.name, key, "no numeric value")
        if key == "rsi" and not 0 <= value <= 100:
            raise PartialIndicatorFailure(self.name, key, f"out of range: {value}")
        return value

    # =========================================================================
    # LEVELS / TREND
    # =========================================================================

    def support_resistance(
        self, bars: list[Bar], current_price: Optional[float] = None
    ) -> SupportResistance:
        """Nearest pivot support below and resistance above the price."""
        if not bars:
            return SupportResistance()
        support, resistance = support_resistance(
            OHLCVData.from_bars(bars),
            current_price=current_price,
            left=settings.pivot_left,
            right=settings.pivot_right,
            max_count=settings.pivot_max_count,
            lookback=settings.sr_lookback_bars,
        )
        return SupportResistance(support=support, resistance=resistance)

    def analyze_trend(
        self,
        bars: list[Bar],
        indicators: IndicatorSet,
        current_price: Optional[float] = None,
    ) -> TrendSignal:
        """
        Vote RSI, the SMA stack and MACD into a trend and recommendation.

        Confidence is the majority share in percent (50 with no votes),
        +5 when MACD voted alongside at least one other signal, capped at 85.
        """
        if not bars:
            return TrendSignal(reason="Insufficient data")

        price = current_price if current_price is not None else bars[-1].close
        bull = bear = 0
        reasons: list[str] = []

        if indicators.rsi is not None:
            r = indicators.rsi
            if r < 30:
                bull += 1
                reasons.append("RSI oversold")
            elif r > 70:
                bear += 1
                reasons.append("RSI overbought")
            elif r >= 60:
                reasons.append(f"RSI elevated ({r:.1f})")
            elif r <= 40:
                reasons.append(f"RSI depressed ({r:.1f})")
            else:
                reasons.append(f"RSI neutral ({r:.1f})")

        sma20, sma50 = indicators.sma20, indicators.sma50
        if sma20 is not None and sma50 is not None:
            if price > sma20 > sma50:
                bull += 1
                reasons.append("Price > SMA20 > SMA50")
            elif price < sma20 < sma50:
                bear += 1
                reasons.append("Price < SMA20 < SMA50")
        elif sma20 is not None:
            if price > sma20:
                bull += 1
                reasons.append("Price > SMA20")
            else:
                bear += 1
                reasons.append("Price < SMA20")

        macd_voted = False
        m = indicators.macd
        if m is not None and m.macd is not None and m.signal is not None:
            macd_voted = True
            if m.macd > m.signal:
                bull += 1
                reasons.append("MACD bullish")
            else:
                bear += 1
                reasons.append("MACD bearish")

        trend, recommendation = TrendDirection.NEUTRAL, Recommendation.HOLD
        if bull > bear:
            trend, recommendation = TrendDirection.BULLISH, Recommendation.BUY
        elif bear > bull:
            trend, recommendation = TrendDirection.BEARISH, Recommendation.SELL

        total = bull + bear
        confidence = round(max(bull, bear) / total * 100) if total else 50
        if total >= 2 and macd_voted:
            confidence += 5

        return TrendSignal(
            trend=trend,
            recommendation=recommendation,
            confidence=min(confidence, MAX_CONFIDENCE),
            reason=", ".join(reasons[:3]),
            current_price=price,
        )

    async def health_check(self) -> bool:
        """Indicator service is always healthy (pure computation)."""
        return True


# Singleton instance
_service_instance: Optional[IndicatorService] = None


def get_indicator_service() -> IndicatorService:
    """Get or create indicator service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = IndicatorService()
    return _service_instance
