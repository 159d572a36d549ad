"""
Quote Alignment Gate

A real-time snapshot quote may only override the last bar's close when its
timestamp falls within one bucket of that bar. Otherwise the bar series is
authoritative.
"""

import math
from typing import Optional

from marketcore.schemas.market import Bar, RealtimeQuote, Timeframe
from marketcore.services.data_ingestion.normalization import epoch_seconds, to_unix_utc

# Field aliases, in order of preference
PRICE_FIELDS = ("close", "price", "ask", "bid")
TIME_FIELDS = ("timestamp", "last_trade_time")


def _first_price(payload: dict, keys: tuple) -> Optional[float]:
    """First alias holding a finite positive number; junk values are skipped."""
    for key in keys:
        try:
            value = float(payload.get(key))
        except (TypeError, ValueError):
            continue
        if math.isfinite(value) and value > 0:
            return value
    return None


def extract_realtime_price(payload: Optional[dict]) -> Optional[RealtimeQuote]:
    """Pull price and timestamp out of a real-time payload, or None."""
    if not isinstance(payload, dict):
        return None

    price = _first_price(payload, PRICE_FIELDS)
    if price is None:
        return None

    ts: Optional[int] = None
    for key in TIME_FIELDS:
        value = payload.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            ts = epoch_seconds(value)
        elif isinstance(value, str):
            ts = to_unix_utc(value)
        if ts is not None:
            break

    return RealtimeQuote(price=price, timestamp=ts)


def is_quote_aligned(
    last_bar_time: Optional[int],
    quote_time: Optional[int],
    timeframe: Timeframe,
) -> bool:
    """True iff the quote lies within one bucket width of the last bar."""
    if last_bar_time is None or quote_time is None:
        return False
    if not (math.isfinite(last_bar_time) and math.isfinite(quote_time)):
        return False
    return abs(quote_time - last_bar_time) <= Timeframe.parse(timeframe).seconds


def select_current_price(
    bars: list[Bar],
    quote: Optional[RealtimeQuote],
    timeframe: Timeframe,
) -> tuple[float, bool]:
    """
    Returns (price, is_realtime).

    An aligned quote wins; otherwise the last bar's close is used.
    """
    last = bars[-1]
    if quote is not None and is_quote_aligned(last.time, quote.timestamp, timeframe):
        return quote.price, True
    return last.close, False
