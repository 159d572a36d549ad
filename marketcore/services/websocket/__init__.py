"""
WebSocket module for live bar updates.

Keeps a symbol+timeframe bar sequence current via:
- EODHD WebSocket stream (primary)
- Last-candle / last-price polling (fallback while the stream is down)
- Periodic full history refresh
"""

from marketcore.services.websocket.interface import LiveFeedSource, LiveStream
from marketcore.services.websocket.manager import (
    ConnectionState,
    LiveFeedSession,
    parse_stream_message,
    reconnect_delay_ms,
    start_live_feed,
)
from marketcore.services.websocket.eodhd_source import EODHDLiveSource, EODHDStream

__all__ = [
    "LiveFeedSource",
    "LiveStream",
    "ConnectionState",
    "LiveFeedSession",
    "parse_stream_message",
    "reconnect_delay_ms",
    "start_live_feed",
    "EODHDLiveSource",
    "EODHDStream",
]
