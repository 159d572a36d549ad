"""
Historical Data Service Implementation

Chooses, per timeframe, which provider resolution to request and whether a
rollup is needed, then produces a canonical bar sequence for the lookback
window of that timeframe.

Resolution ladder (first available wins):
    1m, 5m        -> intraday direct
    15m, 30m      -> 5m intraday, else 1m, rolled up
    1h            -> 1h intraday, else 5m rolled up
    4h            -> 1h intraday, else 5m, rolled up
    1d, 1w, 1M    -> EOD with period d / w / m
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from marketcore.schemas.market import (
    BaseResolution,
    HistoricalBars,
    HistoricalRequest,
    RealtimeQuote,
    Timeframe,
)
from marketcore.services.base import (
    NoHistoricalDataError,
    NoValidDataError,
    ServiceError,
    UpstreamUnavailableError,
)
from marketcore.services.data_ingestion.interface import HistoricalDataServiceInterface
from marketcore.services.data_ingestion.normalization import normalize_bars, rollup
from marketcore.services.data_ingestion.quotes import extract_realtime_price

logger = logging.getLogger(__name__)


# Ordered candidates per timeframe: (base resolution, rollup width or None)
FETCH_STRATEGY: dict[Timeframe, list[tuple[BaseResolution, Optional[int]]]] = {
    Timeframe.M1: [(BaseResolution.INTRADAY_1M, None)],
    Timeframe.M5: [(BaseResolution.INTRADAY_5M, None)],
    Timeframe.M15: [
        (BaseResolution.INTRADAY_5M, 900),
        (BaseResolution.INTRADAY_1M, 900),
    ],
    Timeframe.M30: [
        (BaseResolution.INTRADAY_5M, 1800),
        (BaseResolution.INTRADAY_1M, 1800),
    ],
    Timeframe.H1: [
        (BaseResolution.INTRADAY_1H, None),
        (BaseResolution.INTRADAY_5M, 3600),
    ],
    Timeframe.H4: [
        (BaseResolution.INTRADAY_1H, 14400),
        (BaseResolution.INTRADAY_5M, 14400),
    ],
    Timeframe.D1: [(BaseResolution.EOD_DAILY, None)],
    Timeframe.W1: [(BaseResolution.EOD_WEEKLY, None)],
    Timeframe.MN1: [(BaseResolution.EOD_MONTHLY, None)],
}

EOD_RESOLUTIONS = {
    BaseResolution.EOD_DAILY,
    BaseResolution.EOD_WEEKLY,
    BaseResolution.EOD_MONTHLY,
}


def lookback_window(timeframe: Timeframe, now: Optional[datetime] = None) -> dict:
    """Date and epoch bounds of the analysis window for a timeframe."""
    now = now or datetime.now(timezone.utc)
    start = now - timedelta(days=timeframe.lookback_days)
    return {
        "from_date": start.strftime("%Y-%m-%d"),
        "to_date": now.strftime("%Y-%m-%d"),
        "from_ts": int(start.timestamp()),
        "to_ts": int(now.timestamp()),
    }


class HistoricalDataService(HistoricalDataServiceInterface):
    """
    Historical Data Service.

    A base resolution that errors or comes back empty is treated as
    unavailable and the next candidate is tried. There is no retry.
    """

    def __init__(self, client=None, clock: Optional[Callable[[], datetime]] = None):
        self._client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def client(self):
        if self._client is None:
            from marketcore.services.data_ingestion.eodhd_adapter import get_eodhd_client
            self._client = get_eodhd_client()
        return self._client

    async def execute(self, input_data: HistoricalRequest) -> HistoricalBars:
        """Fetch canonical bars for the requested symbol and timeframe."""
        request = await self.validate_input(input_data)
        symbol = request.symbol
        timeframe = request.timeframe
        window = lookback_window(timeframe, self._clock())

        raw: list = []
        used: Optional[BaseResolution] = None
        bucket: Optional[int] = None

        for resolution, width in FETCH_STRATEGY[timeframe]:
            raw = await self._fetch_base(symbol, resolution, window)
            if raw:
                used, bucket = resolution, width
                break

        if used is None:
            raise NoHistoricalDataError(
                self.name, {"symbol": symbol, "timeframe": timeframe.value}
            )

        bars = normalize_bars(raw)
        if bucket is not None:
            bars = rollup(bars, bucket)

        if not bars:
            raise NoValidDataError(
                self.name,
                {"symbol": symbol, "timeframe": timeframe.value, "raw_count": len(raw)},
            )

        logger.info(
            f"Fetched {len(bars)} {timeframe.value} bars for {symbol} "
            f"(base {used.value}{', rolled up' if bucket else ''})"
        )

        return HistoricalBars(
            symbol=symbol,
            timeframe=timeframe,
            base_resolution=used,
            rolled_up=bucket is not None,
            bars=bars,
            **window,
        )

    async def _fetch_base(
        self, symbol: str, resolution: BaseResolution, window: dict
    ) -> list:
        """Raw records for one base resolution; empty when unavailable."""
        try:
            if resolution in EOD_RESOLUTIONS:
                return await self.client.get_eod(
                    symbol, resolution.value, window["from_date"], window["to_date"]
                )
            return await self.client.get_intraday(
                symbol, resolution.value, window["from_ts"], window["to_ts"]
            )
        except UpstreamUnavailableError as e:
            logger.warning(f"{resolution.value} data unavailable for {symbol}: {e.message}")
            return []

    async def get_quote(self, symbol: str) -> Optional[RealtimeQuote]:
        """Real-time snapshot quote. Upstream failures propagate."""
        payload = await self.client.get_real_time(symbol)
        return extract_realtime_price(payload)

    async def health_check(self) -> bool:
        """Check connectivity to the data provider."""
        try:
            quote = await self.get_quote("EURUSD.FOREX")
            return quote is not None
        except ServiceError as e:
            logger.warning(f"Health check failed: {e}")
            return False


# Singleton instance
_service_instance: Optional[HistoricalDataService] = None


def get_historical_data_service() -> HistoricalDataService:
    """Get or create historical data service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = HistoricalDataService()
    return _service_instance
