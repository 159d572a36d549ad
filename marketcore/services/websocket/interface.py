"""
Live Feed Source Interface

Defines what a live bar session needs from a market data provider.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from marketcore.schemas.market import Bar, Timeframe


class LiveStream(ABC):
    """One open streaming connection for a single symbol."""

    @abstractmethod
    async def subscribe(self) -> None:
        """Send the subscription request for the stream's symbol."""
        pass

    @abstractmethod
    def messages(self) -> AsyncIterator[dict]:
        """
        Yield decoded inbound messages until the connection closes.

        Raises UpstreamUnavailableError on a transport error.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class LiveFeedSource(ABC):
    """
    Provider contract for a LiveFeedSession.

    open_stream:        Streaming connection (raises UpstreamUnavailableError)
    fetch_last_candle:  Current bucket's OHLC for the poll path, or None
    fetch_last_price:   Bare last price for the poll fallback, or None
    fetch_history:      Full canonical sequence for the periodic refresh
    """

    @abstractmethod
    async def open_stream(self, symbol: str) -> LiveStream:
        pass

    @abstractmethod
    async def fetch_last_candle(self, symbol: str, timeframe: Timeframe) -> Optional[Bar]:
        pass

    @abstractmethod
    async def fetch_last_price(self, symbol: str) -> Optional[float]:
        pass

    @abstractmethod
    async def fetch_history(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        pass
