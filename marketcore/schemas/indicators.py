"""
CONTRACT 2: Indicator Engine

Input: IndicatorRequest (canonical bars + lookback window)
Output: IndicatorSet, SupportResistance, TrendSignal

Values are None whenever the history is too short or the source failed.
Nothing here is ever defaulted to zero.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from marketcore.schemas.market import Bar, Timeframe


# =============================================================================
# ENUMS
# =============================================================================


class IndicatorSource(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class TrendDirection(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Recommendation(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


# =============================================================================
# INPUT: IndicatorRequest
# =============================================================================


class IndicatorRequest(BaseModel):
    """
    Request for indicator values.
    Sent by: Analysis Service
    Received by: Indicator Service
    """

    symbol: str = Field(..., description="Canonical provider symbol")
    timeframe: Timeframe
    bars: list[Bar]
    from_date: Optional[str] = Field(default=None, description="Remote window start (YYYY-MM-DD)")
    to_date: Optional[str] = Field(default=None, description="Remote window end (YYYY-MM-DD)")


# =============================================================================
# OUTPUT: Indicator Components
# =============================================================================


class MACDData(BaseModel):
    """MACD indicator values."""

    macd: Optional[float] = None
    signal: Optional[float] = None
    histogram: Optional[float] = None


class IndicatorSet(BaseModel):
    """Uniform indicator shape regardless of where values were computed."""

    rsi: Optional[float] = Field(default=None, ge=0, le=100)
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    ema20: Optional[float] = None
    macd: Optional[MACDData] = None


class SupportResistance(BaseModel):
    """Nearest support below and resistance above the current price."""

    support: Optional[float] = None
    resistance: Optional[float] = None


class Pivot(BaseModel):
    """A local extreme at a given bar index."""

    price: float
    index: int
    time: int


class TrendSignal(BaseModel):
    """Directional bias derived from the indicator votes."""

    trend: TrendDirection = TrendDirection.NEUTRAL
    recommendation: Recommendation = Recommendation.HOLD
    confidence: int = Field(default=0, ge=0, le=100)
    reason: str = ""
    current_price: Optional[float] = None
