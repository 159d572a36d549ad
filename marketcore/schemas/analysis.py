"""
CONTRACT 4: Analysis Pipeline

Input: AnalysisRequest
Output: AnalysisResult

Symbol -> historical bars -> quote gate -> indicators -> levels ->
trend signal -> optional trade setup.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from marketcore.schemas.market import Bar, Timeframe
from marketcore.schemas.indicators import (
    IndicatorSet,
    IndicatorSource,
    Recommendation,
    TrendDirection,
)
from marketcore.schemas.trade import TradeSetup


class AnalysisRequest(BaseModel):
    """
    Request for a full technical analysis.
    Sent by: chat overlays / chart consumers
    Received by: Analysis Service
    """

    symbol: str = Field(..., min_length=1, description="User-facing ticker (e.g. 'XAUUSD')")
    timeframe: str = Field(default="1h", description="Timeframe or alias (e.g. '1h', 'h4', 'daily')")
    include_trade_setup: bool = False


class AnalysisResult(BaseModel):
    """Complete analysis returned as plain data."""

    symbol: str
    timeframe: Timeframe
    current_price: float
    display_price: float
    is_realtime: bool
    trend: TrendDirection
    support: Optional[float] = None
    resistance: Optional[float] = None
    indicators: IndicatorSet
    indicator_source: IndicatorSource
    recommendation: Recommendation
    confidence: int = Field(..., ge=0, le=100)
    reason: str
    trade_setup: Optional[TradeSetup] = None
    data_points: int = Field(..., ge=1)
    last_bar: Bar
    warnings: list[str] = []
    timestamp: datetime
