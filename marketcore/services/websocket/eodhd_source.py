"""
EODHD live feed source.

Binds a LiveFeedSession to the EODHD WebSocket feeds, the intraday endpoint
(for the last candle), the real-time endpoint (bare price) and the
historical data service (full refresh).
"""

import json
import logging
import time
from typing import AsyncIterator, Callable, Optional

import aiohttp

from marketcore.schemas.market import Bar, HistoricalRequest, Timeframe
from marketcore.services.base import UpstreamUnavailableError
from marketcore.services.data_ingestion.normalization import bucket_start, normalize_bars, rollup
from marketcore.services.data_ingestion.quotes import extract_realtime_price
from marketcore.services.data_ingestion.symbols import stream_code, stream_feed
from marketcore.services.websocket.interface import LiveFeedSource, LiveStream

logger = logging.getLogger(__name__)


class EODHDStream(LiveStream):
    """A subscribed EODHD WebSocket for one symbol."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse, code: str):
        self._ws = ws
        self.code = code

    async def subscribe(self) -> None:
        try:
            await self._ws.send_json({"action": "subscribe", "symbols": self.code})
        except (aiohttp.ClientError, ConnectionError) as e:
            raise UpstreamUnavailableError("EODHDStream", f"Subscribe failed: {e}") from e
        logger.info(f"Subscribed to {self.code}")

    async def messages(self) -> AsyncIterator[dict]:
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except ValueError:
                        logger.debug(f"Non-JSON stream message: {msg.data!r}")
                        continue
                    if isinstance(data, dict):
                        yield data
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    raise UpstreamUnavailableError(
                        "EODHDStream", f"WebSocket error: {self._ws.exception()}"
                    )
        except (aiohttp.ClientError, ConnectionError) as e:
            raise UpstreamUnavailableError("EODHDStream", f"WebSocket read failed: {e}") from e

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()


class EODHDLiveSource(LiveFeedSource):
    """LiveFeedSource backed by the EODHD APIs."""

    def __init__(
        self,
        client=None,
        historical_service=None,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._historical = historical_service
        self._clock = clock

    @property
    def client(self):
        if self._client is None:
            from marketcore.services.data_ingestion.eodhd_adapter import get_eodhd_client
            self._client = get_eodhd_client()
        return self._client

    @property
    def historical(self):
        if self._historical is None:
            from marketcore.services.data_ingestion.service import get_historical_data_service
            self._historical = get_historical_data_service()
        return self._historical

    async def open_stream(self, symbol: str) -> LiveStream:
        ws = await self.client.connect_stream(stream_feed(symbol))
        return EODHDStream(ws, stream_code(symbol))

    async def fetch_last_candle(self, symbol: str, timeframe: Timeframe) -> Optional[Bar]:
        """Current bucket's candle built from 1m (or 5m for hourly+) intraday bars."""
        if not timeframe.is_intraday:
            return None

        now = int(self._clock())
        start = bucket_start(now, timeframe.seconds)
        interval = "1m" if timeframe.seconds < 3600 else "5m"

        raw = await self.client.get_intraday(symbol, interval, start, now)
        bars = rollup(normalize_bars(raw), timeframe.seconds)
        return bars[-1] if bars else None

    async def fetch_last_price(self, symbol: str) -> Optional[float]:
        quote = extract_realtime_price(await self.client.get_real_time(symbol))
        return quote.price if quote else None

    async def fetch_history(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        result = await self.historical.execute(
            HistoricalRequest(symbol=symbol, timeframe=timeframe)
        )
        return result.bars
