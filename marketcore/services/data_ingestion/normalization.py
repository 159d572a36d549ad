"""
Bar Normalization and Aggregation

Turns loosely-typed provider records into canonical bar sequences,
rolls fine bars up into coarser buckets and merges live prices into the
tail of a sequence.

All functions are pure: inputs are never mutated, new lists are returned.
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Union

from marketcore.schemas.market import Bar
from marketcore.services.base import ValidationError

logger = logging.getLogger(__name__)

# Field aliases, in order of preference
EPOCH_FIELDS = ("timestamp", "time")
DATETIME_FIELDS = ("datetime", "date")

# Epoch values above this are milliseconds
_MS_THRESHOLD = 1e11
_NUMERIC = re.compile(r"^-?\d+(\.\d+)?$")


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def epoch_seconds(value: Any) -> Optional[int]:
    """Coerce a numeric epoch (seconds or milliseconds) to whole seconds."""
    if isinstance(value, bool):
        return None
    number = _to_float(value)
    if not math.isfinite(number):
        return None
    if abs(number) > _MS_THRESHOLD:
        number /= 1000.0
    return int(math.floor(number))


def to_unix_utc(value: Any) -> Optional[int]:
    """
    Parse a date/time string into unix seconds.

    Accepts "YYYY-MM-DD", "YYYY-MM-DD HH:MM:SS" and ISO-8601 forms.
    Strings without a zone marker are read as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def _record_time(record: Mapping[str, Any]) -> Optional[int]:
    for key in EPOCH_FIELDS:
        value = record.get(key)
        if value is None or isinstance(value, str):
            continue
        ts = epoch_seconds(value)
        if ts is not None:
            return ts
    for key in EPOCH_FIELDS + DATETIME_FIELDS:
        value = record.get(key)
        if isinstance(value, str) and _NUMERIC.match(value.strip()):
            ts = epoch_seconds(value)
        elif isinstance(value, (str, datetime)):
            ts = to_unix_utc(value)
        else:
            continue
        if ts is not None:
            return ts
    return None


def _coerce_record(record: Union[Bar, Mapping[str, Any]]) -> Optional[Bar]:
    """Validate one record, returning None when it must be rejected."""
    if isinstance(record, Bar):
        return record
    if not isinstance(record, Mapping):
        return None

    ts = _record_time(record)
    o = _to_float(record.get("open"))
    h = _to_float(record.get("high"))
    l = _to_float(record.get("low"))
    c = _to_float(record.get("close"))
    v = _to_float(record.get("volume") if record.get("volume") is not None else 0)

    if ts is None or not all(math.isfinite(x) for x in (o, h, l, c)):
        return None
    if o <= 0 or h <= 0 or l <= 0 or c <= 0:
        return None
    if h < max(o, c) or l > min(o, c):
        return None
    if not math.isfinite(v):
        v = 0.0
    if v < 0:
        return None

    return Bar(time=ts, open=o, high=h, low=l, close=c, volume=v)


def normalize_bars(records: Optional[Iterable[Union[Bar, Mapping[str, Any]]]]) -> list[Bar]:
    """
    Validate, deduplicate and sort raw bar records.

    Duplicate timestamps keep the first occurrence in input order.
    Normalizing an already-normalized sequence returns an equal sequence.
    """
    if not records:
        return []

    seen: set[int] = set()
    out: list[Bar] = []
    rejected = 0

    for record in records:
        bar = _coerce_record(record)
        if bar is None:
            rejected += 1
            continue
        if bar.time in seen:
            continue
        seen.add(bar.time)
        out.append(bar)

    if rejected:
        logger.debug(f"Rejected {rejected} malformed bar records")

    out.sort(key=lambda b: b.time)
    return out


def bucket_start(ts: int, bucket_seconds: int) -> int:
    """Start of the fixed-width bucket containing `ts`."""
    return (int(ts) // bucket_seconds) * bucket_seconds


def rollup(bars: list[Bar], bucket_seconds: int) -> list[Bar]:
    """
    Aggregate ascending bars into coarser fixed-width buckets.

    Bucket boundaries depend only on `bucket_seconds`, so rollups of
    overlapping windows line up with each other.
    """
    if bucket_seconds <= 0:
        raise ValidationError("Aggregator", f"Invalid bucket width: {bucket_seconds}")
    if not bars:
        return []

    out: list[Bar] = []
    cur: Optional[dict] = None

    for bar in bars:
        start = bucket_start(bar.time, bucket_seconds)
        if cur is None or start != cur["time"]:
            if cur is not None:
                out.append(Bar(**cur))
            cur = {
                "time": start,
                "open": bar.open,
                "high": bar.high,
                "low": bar.low,
                "close": bar.close,
                "volume": bar.volume,
            }
        else:
            cur["high"] = max(cur["high"], bar.high)
            cur["low"] = min(cur["low"], bar.low)
            cur["close"] = bar.close
            cur["volume"] += bar.volume

    if cur is not None:
        out.append(Bar(**cur))
    return out


# =============================================================================
# LIVE MERGE
# =============================================================================


def merge_tick(bars: list[Bar], price: float, ts: int, bucket_seconds: int) -> list[Bar]:
    """
    Merge a bare price at time `ts` into the tail of `bars`.

    A strictly later bucket appends a flat bar; anything else updates the
    tail's high/low/close and keeps its open.
    """
    bucket = bucket_start(ts, bucket_seconds)
    out = list(bars)
    tail = out[-1] if out else None

    if tail is None or tail.time < bucket:
        out.append(Bar(time=bucket, open=price, high=price, low=price, close=price, volume=0))
    else:
        out[-1] = tail.model_copy(update={
            "high": max(tail.high, price),
            "low": min(tail.low, price),
            "close": price,
        })
    return out


def merge_candle(bars: list[Bar], candle: Bar, bucket_seconds: int) -> list[Bar]:
    """
    Merge a full OHLC candle into the tail of `bars`.

    A candle in a strictly later bucket is appended as-is (volume reset to 0,
    time snapped to its bucket); otherwise the tail absorbs its extremes and
    takes its close.
    """
    bucket = bucket_start(candle.time, bucket_seconds)
    out = list(bars)
    tail = out[-1] if out else None

    if tail is None or bucket_start(tail.time, bucket_seconds) < bucket:
        out.append(candle.model_copy(update={"time": bucket, "volume": 0.0}))
    else:
        out[-1] = tail.model_copy(update={
            "high": max(tail.high, candle.high),
            "low": min(tail.low, candle.low),
            "close": candle.close,
        })
    return out
