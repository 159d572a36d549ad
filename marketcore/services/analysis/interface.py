"""
Analysis Service Interface

Defines the contract for the end-to-end technical analysis pipeline.
"""

from abc import abstractmethod

from marketcore.services.base import BaseService
from marketcore.schemas.analysis import AnalysisRequest, AnalysisResult


class AnalysisServiceInterface(BaseService[AnalysisRequest, AnalysisResult]):
    """
    Analysis Service Contract.

    INPUT: AnalysisRequest
        - symbol: User-facing ticker
        - timeframe: Timeframe or alias
        - include_trade_setup: Whether to build a trade setup

    OUTPUT: AnalysisResult
        - current/display price, trend, support/resistance, indicators
        - recommendation, confidence, reason
        - trade_setup (None when none qualifies or not requested)

    PIPELINE:
        1. Resolve symbol
        2. Fetch historical bars
        3. Fetch real-time quote (failure tolerated)
        4. Quote alignment gate
        5. Indicators (local or remote)
        6. Support / resistance
        7. Trend vote
        8. Trade setup (optional)

    RAISES:
        - ValidationError: Empty symbol or unknown timeframe
        - NoDataError: No usable history
    """

    @property
    def name(self) -> str:
        return "AnalysisService"

    @abstractmethod
    async def execute(self, input_data: AnalysisRequest) -> AnalysisResult:
        """Run the full analysis pipeline."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Healthy when the data provider is reachable."""
        pass
