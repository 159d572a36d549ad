"""
Data Ingestion Service Interface

Defines the contract for the historical data layer.
"""

from abc import abstractmethod
from typing import Optional

from marketcore.services.base import BaseService
from marketcore.schemas.market import HistoricalBars, HistoricalRequest, RealtimeQuote


class HistoricalDataServiceInterface(BaseService[HistoricalRequest, HistoricalBars]):
    """
    Historical Data Service Contract.

    INPUT: HistoricalRequest
        - symbol: Canonical provider symbol
        - timeframe: Requested bar timeframe

    OUTPUT: HistoricalBars
        - bars: Canonical ascending bar sequence (never empty)
        - base_resolution / rolled_up: How the timeframe was produced
        - from_date, to_date, from_ts, to_ts: Lookback window bounds

    RAISES:
        - NoHistoricalDataError: No base resolution could be retrieved
        - NoValidDataError: Nothing survived normalization
    """

    @property
    def name(self) -> str:
        return "HistoricalDataService"

    @abstractmethod
    async def execute(self, input_data: HistoricalRequest) -> HistoricalBars:
        """Fetch, normalize and (if needed) roll up historical bars."""
        pass

    @abstractmethod
    async def get_quote(self, symbol: str) -> Optional[RealtimeQuote]:
        """Get the real-time snapshot quote for a symbol."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check connectivity to the data provider."""
        pass
