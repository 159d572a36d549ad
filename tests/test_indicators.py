"""Tests for indicator calculations, levels and the trend vote."""
import numpy as np
import pytest

from conftest import create_test_bars, create_trending_bars, make_bar
from marketcore.schemas.indicators import (
    IndicatorSet,
    MACDData,
    Recommendation,
    TrendDirection,
)
from marketcore.services.indicators.calculations import (
    OHLCVData,
    atr,
    ema,
    find_pivots,
    get_last_valid,
    macd,
    rsi,
    sma,
    support_resistance,
    true_range,
)
from marketcore.services.indicators.service import IndicatorService, latest_entry


class TestMovingAverages:
    def test_sma_last_window(self):
        data = np.arange(1, 21, dtype=float)
        assert get_last_valid(sma(data, 5)) == pytest.approx(18.0)

    def test_sma_insufficient(self):
        assert get_last_valid(sma(np.array([1.0, 2.0]), 5)) is None

    def test_ema_seeded_with_sma(self):
        data = np.array([1.0, 2.0, 3.0, 4.0])
        result = ema(data, 3)
        assert np.isnan(result[1])
        assert result[2] == pytest.approx(2.0)
        assert result[3] == pytest.approx(4.0 * 0.5 + 2.0 * 0.5)

    def test_ema_seeded_with_first(self):
        result = ema(np.array([10.0, 20.0]), 3, seed="first")
        assert result[0] == 10.0
        assert result[1] == pytest.approx(15.0)


class TestRSI:
    def test_rising_series_is_100(self):
        closes = np.arange(100, 115, dtype=float)
        assert len(closes) == 15
        assert get_last_valid(rsi(closes, 14)) == 100.0

    def test_needs_period_plus_one(self):
        assert get_last_valid(rsi(np.arange(14, dtype=float), 14)) is None

    def test_falling_series_is_0(self):
        closes = np.arange(115, 100, -1, dtype=float)
        assert get_last_valid(rsi(closes, 14)) == pytest.approx(0.0)

    def test_balanced_changes_is_50(self):
        closes = np.array([100.0 + (i % 2) for i in range(15)])
        assert get_last_valid(rsi(closes, 14)) == pytest.approx(50.0)


class TestMACD:
    def test_undefined_below_slow_plus_signal(self):
        line, signal, hist = macd(np.arange(34, dtype=float))
        assert get_last_valid(line) is None
        assert get_last_valid(signal) is None

    def test_rising_series_positive(self):
        line, signal, hist = macd(np.arange(1, 61, dtype=float))
        assert get_last_valid(line) > 0
        assert get_last_valid(hist) == pytest.approx(get_last_valid(line) - get_last_valid(signal))


class TestATR:
    def test_true_range_uses_previous_close(self):
        bars = [make_bar(0, 10, 11, 9, 10), make_bar(60, 14, 15, 13, 14)]
        data = OHLCVData.from_bars(bars)
        tr = true_range(data.highs, data.lows, data.closes)
        assert np.isnan(tr[0])
        assert tr[1] == 5.0

    def test_atr_simple_mean(self, setup_bars):
        data = OHLCVData.from_bars(setup_bars)
        assert get_last_valid(atr(data.highs, data.lows, data.closes, 14)) == pytest.approx(10.0)

    def test_atr_needs_period_plus_one(self):
        data = OHLCVData.from_bars(create_test_bars([100.0] * 14))
        assert get_last_valid(atr(data.highs, data.lows, data.closes, 14)) is None


class TestPivots:
    def _vee(self):
        # Symmetric dip to 90 at index 5, peak to 110 at index 15
        closes = [100, 99, 98, 97, 96, 90, 96, 97, 98, 99, 100, 101, 102, 103, 104, 110,
                  104, 103, 102, 101, 100]
        return create_test_bars([float(c) for c in closes], spread=1.0)

    def test_find_pivots(self):
        data = OHLCVData.from_bars(self._vee())
        highs, lows = find_pivots(data.highs, data.lows, data.timestamps, 4, 4)
        assert [p.index for p in highs] == [15]
        assert [p.index for p in lows] == [5]
        assert lows[0].price == 89.0
        assert highs[0].price == 111.0

    def test_equal_neighbours_are_not_pivots(self):
        data = OHLCVData.from_bars(create_test_bars([100.0] * 20))
        highs, lows = find_pivots(data.highs, data.lows, data.timestamps, 4, 4)
        assert highs == [] and lows == []

    def test_keeps_most_recent(self):
        closes = [100.0 + (10 if i % 10 == 5 else 0) for i in range(130)]
        data = OHLCVData.from_bars(create_test_bars(closes, spread=1.0))
        highs, _ = find_pivots(data.highs, data.lows, data.timestamps, 4, 4, max_count=10)
        assert len(highs) == 10
        assert highs[-1].index == 125

    def test_support_resistance_nearest(self):
        data = OHLCVData.from_bars(self._vee())
        support, resistance = support_resistance(data)
        assert support == 89.0
        assert resistance == 111.0

    def test_support_resistance_fallback_to_range(self):
        data = OHLCVData.from_bars(create_test_bars([100.0 + i for i in range(12)], spread=1.0))
        support, resistance = support_resistance(data)
        assert support == 99.0
        assert resistance == 112.0

    def test_support_resistance_too_short(self):
        data = OHLCVData.from_bars(create_test_bars([100.0] * 9))
        assert support_resistance(data) == (None, None)


class TestComputeLocal:
    def test_short_history_is_none_not_zero(self):
        result = IndicatorService(client=object()).compute_local(create_test_bars([100.0] * 10))
        assert result == IndicatorSet()

    def test_full_history(self):
        bars = create_trending_bars(60)
        result = IndicatorService(client=object()).compute_local(bars)
        assert result.rsi == 100.0
        assert result.sma20 == pytest.approx(np.mean([100.0 + i for i in range(40, 60)]))
        assert result.sma50 is not None
        assert result.ema20 is not None
        assert result.macd is not None and result.macd.macd > 0


class TestLatestEntry:
    def test_picks_latest_date(self):
        rows = [{"date": "2024-01-03", "rsi": 3}, {"date": "2024-01-01", "rsi": 1}]
        assert latest_entry(rows)["rsi"] == 3

    def test_object_and_empty(self):
        assert latest_entry({"rsi": 5}) == {"rsi": 5}
        assert latest_entry([]) is None
        assert latest_entry("error") is None


class TestAnalyzeTrend:
    service = IndicatorService(client=object())

    def test_bullish_votes(self):
        bars = create_test_bars([100.0] * 30)
        indicators = IndicatorSet(
            rsi=25.0, sma20=99.0, sma50=98.0,
            macd=MACDData(macd=1.0, signal=0.5, histogram=0.5),
        )
        signal = self.service.analyze_trend(bars, indicators, 100.0)
        assert signal.trend == TrendDirection.BULLISH
        assert signal.recommendation == Recommendation.BUY
        assert signal.confidence == 85  # 100 + 5, capped
        assert signal.reason == "RSI oversold, Price > SMA20 > SMA50, MACD bullish"

    def test_split_vote(self):
        bars = create_test_bars([100.0] * 30)
        indicators = IndicatorSet(
            rsi=50.0, sma20=101.0,
            macd=MACDData(macd=1.0, signal=0.5),
        )
        signal = self.service.analyze_trend(bars, indicators, 100.0)
        assert signal.trend == TrendDirection.NEUTRAL
        assert signal.recommendation == Recommendation.HOLD
        assert signal.confidence == 55
        assert signal.reason.startswith("RSI neutral (50.0)")

    def test_no_votes(self):
        signal = self.service.analyze_trend(create_test_bars([100.0]), IndicatorSet())
        assert signal.confidence == 50
        assert signal.current_price == 100.0

    def test_two_of_three(self):
        bars = create_test_bars([100.0] * 30)
        indicators = IndicatorSet(
            rsi=75.0, sma20=101.0, sma50=102.0,
            macd=MACDData(macd=1.0, signal=0.5),
        )
        signal = self.service.analyze_trend(bars, indicators, 100.0)
        assert signal.trend == TrendDirection.BEARISH
        assert signal.confidence == 72  # round(2/3 * 100) + 5

    def test_no_bars(self):
        signal = self.service.analyze_trend([], IndicatorSet())
        assert signal.confidence == 0
        assert signal.reason == "Insufficient data"
