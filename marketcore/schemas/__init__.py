"""
marketcore Schema Contracts

This module defines all data contracts between system components.
These are the authoritative interfaces - all modules must conform to these schemas.
"""

from marketcore.schemas.market import (
    Bar,
    BarSnapshot,
    BaseResolution,
    HistoricalBars,
    HistoricalRequest,
    RealtimeQuote,
    SnapshotSource,
    SymbolMatch,
    Timeframe,
)
from marketcore.schemas.indicators import (
    IndicatorRequest,
    IndicatorSet,
    IndicatorSource,
    MACDData,
    Pivot,
    Recommendation,
    SupportResistance,
    TrendDirection,
    TrendSignal,
)
from marketcore.schemas.trade import (
    TradeDirection,
    TradeSetup,
)
from marketcore.schemas.analysis import (
    AnalysisRequest,
    AnalysisResult,
)

__all__ = [
    # Market
    "Bar",
    "BarSnapshot",
    "BaseResolution",
    "HistoricalBars",
    "HistoricalRequest",
    "RealtimeQuote",
    "SnapshotSource",
    "SymbolMatch",
    "Timeframe",
    # Indicators
    "IndicatorRequest",
    "IndicatorSet",
    "IndicatorSource",
    "MACDData",
    "Pivot",
    "Recommendation",
    "SupportResistance",
    "TrendDirection",
    "TrendSignal",
    # Trade
    "TradeDirection",
    "TradeSetup",
    # Analysis
    "AnalysisRequest",
    "AnalysisResult",
]
