"""
Indicator Engine Service

CONTRACT:
    Input:  IndicatorRequest (canonical bars + lookback window)
    Output: IndicatorResult

RESPONSIBILITIES:
    - Calculate RSI, SMA, EMA and MACD from bars
    - Fetch pre-computed indicators for daily+ timeframes
    - Detect pivot support/resistance levels
    - Vote indicators into a trend and recommendation

PURE PYTHON - Uses NumPy for calculations.
All math is deterministic and reproducible.
"""

from marketcore.services.indicators.interface import IndicatorResult, IndicatorServiceInterface
from marketcore.services.indicators.service import IndicatorService, get_indicator_service

__all__ = [
    "IndicatorResult",
    "IndicatorServiceInterface",
    "IndicatorService",
    "get_indicator_service",
]
