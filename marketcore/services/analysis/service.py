"""
Analysis Service Implementation

Chains symbol resolution, historical data, the quote gate, indicators,
levels, the trend vote and the trade setup into one result.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from marketcore.schemas.analysis import AnalysisRequest, AnalysisResult
from marketcore.schemas.indicators import IndicatorRequest
from marketcore.schemas.market import HistoricalRequest, RealtimeQuote, Timeframe
from marketcore.services.base import ServiceError, ValidationError
from marketcore.services.analysis.interface import AnalysisServiceInterface
from marketcore.services.data_ingestion.quotes import select_current_price
from marketcore.services.data_ingestion.symbols import SymbolResolver, round_price
from marketcore.services.risk.interface import TradeSetupInput

logger = logging.getLogger(__name__)


class AnalysisService(AnalysisServiceInterface):
    """
    Analysis Service.

    Services are injected for tests; otherwise the module singletons are used.
    """

    def __init__(
        self,
        resolver: Optional[SymbolResolver] = None,
        historical_service=None,
        indicator_service=None,
        trade_setup_service=None,
    ):
        self._resolver = resolver
        self._historical = historical_service
        self._indicators = indicator_service
        self._trade_setup = trade_setup_service

    @property
    def resolver(self) -> SymbolResolver:
        if self._resolver is None:
            self._resolver = SymbolResolver()
        return self._resolver

    @property
    def historical(self):
        if self._historical is None:
            from marketcore.services.data_ingestion.service import get_historical_data_service
            self._historical = get_historical_data_service()
        return self._historical

    @property
    def indicators(self):
        if self._indicators is None:
            from marketcore.services.indicators.service import get_indicator_service
            self._indicators = get_indicator_service()
        return self._indicators

    @property
    def trade_setup(self):
        if self._trade_setup is None:
            from marketcore.services.risk.service import get_trade_setup_service
            self._trade_setup = get_trade_setup_service()
        return self._trade_setup

    @property
    def name(self) -> str:
        return "AnalysisService"

    async def validate_input(self, input_data: AnalysisRequest) -> AnalysisRequest:
        if not input_data.symbol.strip():
            raise ValidationError(self.name, "Symbol is required")
        try:
            Timeframe.parse(input_data.timeframe)
        except ValueError as e:
            raise ValidationError(self.name, str(e), {"timeframe": input_data.timeframe}) from e
        return input_data

    async def execute(self, input_data: AnalysisRequest) -> AnalysisResult:
        """Run the full analysis pipeline."""
        request = await self.validate_input(input_data)
        timeframe = Timeframe.parse(request.timeframe)
        warnings: list[str] = []

        symbol = await self.resolver.resolve(request.symbol)

        history = await self.historical.execute(
            HistoricalRequest(symbol=symbol, timeframe=timeframe)
        )
        bars = history.bars

        quote = await self._fetch_quote(symbol, warnings)
        current_price, is_realtime = select_current_price(bars, quote, timeframe)
        if quote is not None and not is_realtime:
            logger.info(f"{symbol}: quote not aligned with last {timeframe.value} bar, using close")

        indicator_result = await self.indicators.execute(
            IndicatorRequest(
                symbol=symbol,
                timeframe=timeframe,
                bars=bars,
                from_date=history.from_date,
                to_date=history.to_date,
            )
        )
        warnings.extend(indicator_result.warnings)

        levels = self.indicators.support_resistance(bars)
        signal = self.indicators.analyze_trend(
            bars, indicator_result.indicators, current_price
        )

        setup = None
        if request.include_trade_setup:
            setup = await self.trade_setup.execute(
                TradeSetupInput(
                    symbol=symbol,
                    bars=bars,
                    support=levels.support,
                    resistance=levels.resistance,
                    recommendation=signal.recommendation,
                    confidence=signal.confidence,
                    current_price=current_price,
                )
            )
            if setup is None:
                warnings.append("No trade setup meets the minimum reward:risk")

        return AnalysisResult(
            symbol=symbol,
            timeframe=timeframe,
            current_price=current_price,
            display_price=round_price(symbol, current_price),
            is_realtime=is_realtime,
            trend=signal.trend,
            support=levels.support,
            resistance=levels.resistance,
            indicators=indicator_result.indicators,
            indicator_source=indicator_result.source,
            recommendation=signal.recommendation,
            confidence=signal.confidence,
            reason=signal.reason,
            trade_setup=setup,
            data_points=len(bars),
            last_bar=bars[-1],
            warnings=warnings,
            timestamp=datetime.now(timezone.utc),
        )

    async def _fetch_quote(self, symbol: str, warnings: list[str]) -> Optional[RealtimeQuote]:
        try:
            return await self.historical.get_quote(symbol)
        except ServiceError as e:
            logger.warning(f"Real-time quote unavailable for {symbol}: {e.message}")
            warnings.append("Real-time quote unavailable, using last close")
            return None

    async def health_check(self) -> bool:
        """Healthy when the data provider is reachable."""
        return await self.historical.health_check()


# Singleton instance
_service_instance: Optional[AnalysisService] = None


def get_analysis_service() -> AnalysisService:
    """Get or create analysis service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = AnalysisService()
    return _service_instance
