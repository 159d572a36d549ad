"""
Indicator Engine Service Interface

Defines the contract for the indicator calculation layer.
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from marketcore.services.base import BaseService
from marketcore.schemas.market import Bar
from marketcore.schemas.indicators import (
    IndicatorRequest,
    IndicatorSet,
    IndicatorSource,
    SupportResistance,
    TrendSignal,
)


@dataclass
class IndicatorResult:
    """Indicator values plus where they came from and any degraded fields."""

    indicators: IndicatorSet
    source: IndicatorSource
    warnings: list[str] = field(default_factory=list)


class IndicatorServiceInterface(BaseService[IndicatorRequest, IndicatorResult]):
    """
    Indicator Engine Service Contract.

    INPUT: IndicatorRequest
        - symbol: Canonical symbol (used for remote fetches)
        - timeframe: Decides local vs remote computation
        - bars: Canonical bar sequence
        - from_date, to_date: Remote lookback window

    OUTPUT: IndicatorResult
        - indicators: RSI(14), SMA(20), SMA(50), EMA(20), MACD(12,26,9)
        - source: local or remote
        - warnings: Indicators that degraded to None
    """

    @property
    def name(self) -> str:
        return "IndicatorService"

    @abstractmethod
    async def execute(self, input_data: IndicatorRequest) -> IndicatorResult:
        """Compute or fetch the indicator set."""
        pass

    @abstractmethod
    def compute_local(self, bars: list[Bar]) -> IndicatorSet:
        """Compute indicators from bars."""
        pass

    @abstractmethod
    async def fetch_remote(
        self, symbol: str, from_date: str, to_date: str
    ) -> tuple[IndicatorSet, list[str]]:
        """Fetch pre-computed indicators. Returns (indicators, warnings)."""
        pass

    @abstractmethod
    def support_resistance(
        self, bars: list[Bar], current_price: Optional[float] = None
    ) -> SupportResistance:
        """Pivot-based support and resistance."""
        pass

    @abstractmethod
    def analyze_trend(
        self,
        bars: list[Bar],
        indicators: IndicatorSet,
        current_price: Optional[float] = None,
    ) -> TrendSignal:
        """Directional bias from indicator votes."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Indicator service is always healthy (pure computation)."""
        pass
