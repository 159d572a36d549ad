"""
CONTRACT 1: Market Data Layer

Input: HistoricalRequest
Output: HistoricalBars

Bars, timeframes and quotes exchanged between the data ingestion layer,
the live feed and the analysis services.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================


class Timeframe(str, Enum):
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"
    W1 = "1w"
    MN1 = "1M"

    @property
    def seconds(self) -> int:
        """Bucket width used for rollup and live merging."""
        return TIMEFRAME_SECONDS[self]

    @property
    def lookback_days(self) -> int:
        """Calendar days of history requested for analysis."""
        return LOOKBACK_DAYS[self]

    @property
    def is_intraday(self) -> bool:
        return self.seconds < TIMEFRAME_SECONDS[Timeframe.D1]

    @classmethod
    def parse(cls, value: "str | Timeframe") -> "Timeframe":
        """
        Resolve a user-facing timeframe string.

        Raises ValueError for anything outside the supported set.
        """
        if isinstance(value, Timeframe):
            return value
        raw = str(value or "").strip()
        if raw in ("1M", "1mth", "1MTH"):
            return cls.MN1
        alias = TIMEFRAME_ALIASES.get(raw.lower())
        if alias is None:
            raise ValueError(f"Unsupported timeframe: {value!r}")
        return alias


TIMEFRAME_SECONDS = {
    Timeframe.M1: 60,
    Timeframe.M5: 300,
    Timeframe.M15: 900,
    Timeframe.M30: 1800,
    Timeframe.H1: 3600,
    Timeframe.H4: 14400,
    Timeframe.D1: 86400,
    Timeframe.W1: 604800,
    Timeframe.MN1: 2592000,
}

LOOKBACK_DAYS = {
    Timeframe.M1: 1,
    Timeframe.M5: 2,
    Timeframe.M15: 5,
    Timeframe.M30: 7,
    Timeframe.H1: 10,
    Timeframe.H4: 30,
    Timeframe.D1: 365 * 2,
    Timeframe.W1: 365 * 5,
    Timeframe.MN1: 365 * 10,
}

TIMEFRAME_ALIASES = {
    "1m": Timeframe.M1, "m1": Timeframe.M1, "01m": Timeframe.M1,
    "5m": Timeframe.M5, "m5": Timeframe.M5, "05m": Timeframe.M5,
    "15m": Timeframe.M15, "m15": Timeframe.M15, "15": Timeframe.M15,
    "30m": Timeframe.M30, "m30": Timeframe.M30, "30": Timeframe.M30,
    "1h": Timeframe.H1, "h1": Timeframe.H1, "60": Timeframe.H1, "60m": Timeframe.H1,
    "4h": Timeframe.H4, "h4": Timeframe.H4, "240": Timeframe.H4, "240m": Timeframe.H4,
    "1d": Timeframe.D1, "d1": Timeframe.D1, "day": Timeframe.D1, "daily": Timeframe.D1,
    "1w": Timeframe.W1, "w1": Timeframe.W1, "week": Timeframe.W1, "weekly": Timeframe.W1,
    "month": Timeframe.MN1, "monthly": Timeframe.MN1,
}


class BaseResolution(str, Enum):
    """Raw resolutions the provider serves directly."""

    INTRADAY_1M = "1m"
    INTRADAY_5M = "5m"
    INTRADAY_1H = "1h"
    EOD_DAILY = "d"
    EOD_WEEKLY = "w"
    EOD_MONTHLY = "m"


# =============================================================================
# BARS
# =============================================================================


class Bar(BaseModel):
    """Single OHLCV bar. `time` is the bucket start in unix seconds."""

    time: int = Field(..., ge=0)
    open: float = Field(..., gt=0)
    high: float = Field(..., gt=0)
    low: float = Field(..., gt=0)
    close: float = Field(..., gt=0)
    volume: float = Field(default=0.0, ge=0)

    class Config:
        frozen = True

    @field_validator("close")
    @classmethod
    def close_must_sit_inside_range(cls, v, info):
        open_ = info.data.get("open")
        high = info.data.get("high")
        low = info.data.get("low")
        if open_ is None or high is None or low is None:
            return v
        if high < max(open_, v):
            raise ValueError("high must be >= max(open, close)")
        if low > min(open_, v):
            raise ValueError("low must be <= min(open, close)")
        return v


# =============================================================================
# INPUT: HistoricalRequest
# =============================================================================


class HistoricalRequest(BaseModel):
    """
    Request for a bounded window of canonical bars.
    Sent by: Analysis Service / Live Feed refresh
    Received by: Historical Data Service
    """

    symbol: str = Field(..., min_length=1, description="Canonical provider symbol")
    timeframe: Timeframe = Field(default=Timeframe.H1)


# =============================================================================
# OUTPUT: HistoricalBars
# =============================================================================


class HistoricalBars(BaseModel):
    """Canonical bar sequence plus the window it was fetched for."""

    symbol: str
    timeframe: Timeframe
    base_resolution: BaseResolution
    rolled_up: bool = False
    from_date: str = Field(..., description="Window start (YYYY-MM-DD)")
    to_date: str = Field(..., description="Window end (YYYY-MM-DD)")
    from_ts: int
    to_ts: int
    bars: list[Bar]

    @property
    def last_bar(self) -> Bar:
        return self.bars[-1]


# =============================================================================
# QUOTES / SYMBOLS
# =============================================================================


class RealtimeQuote(BaseModel):
    """Snapshot quote extracted from the real-time endpoint."""

    price: float = Field(..., gt=0)
    timestamp: Optional[int] = None


class SymbolMatch(BaseModel):
    """One row of the provider's symbol search response."""

    code: str
    exchange: str
    is_primary: bool = False
    name: Optional[str] = None
    asset_type: Optional[str] = None


# =============================================================================
# LIVE SNAPSHOTS
# =============================================================================


class SnapshotSource(str, Enum):
    HISTORY = "history"
    STREAM = "stream"
    POLL = "poll"
    REFRESH = "refresh"


class BarSnapshot(BaseModel):
    """
    Read-only view of a live bar sequence.
    Published by: Live Feed Session
    Consumed by: chart rendering, indicator re-computation
    """

    symbol: str
    timeframe: Timeframe
    bars: tuple[Bar, ...]
    source: SnapshotSource
    version: int = Field(..., ge=0)
    published_at: datetime

    class Config:
        frozen = True

    @property
    def last_price(self) -> Optional[float]:
        return self.bars[-1].close if self.bars else None
