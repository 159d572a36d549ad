"""Pytest configuration and shared bar-building helpers."""
from typing import Iterable, List

import pytest

from marketcore.schemas.market import Bar

BASE_TIME = 1_704_067_200  # 2024-01-01 00:00:00 UTC


def make_bar(time: int, open: float, high: float, low: float, close: float, volume: float = 0.0) -> Bar:
    return Bar(time=time, open=open, high=high, low=low, close=close, volume=volume)


def create_test_bars(
    closes: Iterable[float],
    step: int = 3600,
    spread: float = 5.0,
    start: int = BASE_TIME,
) -> List[Bar]:
    """Flat bars (open == close) with high/low `spread` away from the close.

    Args:
        closes: Close price of each bar
        step: Seconds between bars
        spread: Distance from close to high and low
        start: Time of the first bar

    Returns:
        Ascending list of Bar objects
    """
    return [
        make_bar(start + i * step, c, c + spread, c - spread, c, 100.0)
        for i, c in enumerate(closes)
    ]


def create_trending_bars(count: int = 60, base_price: float = 100.0, drift: float = 1.0, step: int = 3600) -> List[Bar]:
    """Steadily rising (drift > 0) or falling (drift < 0) bars."""
    return create_test_bars(
        [base_price + i * drift for i in range(count)], step=step, spread=abs(drift) or 1.0
    )


# Closes giving ATR(14) = 10 with spread 5: 27 hourly bars, range 1975..2005
SETUP_CLOSES = [1980.0, 1985.0] * 10 + [1990.0, 1995.0, 2000.0, 1995.0, 2000.0, 1995.0, 2000.0]


@pytest.fixture
def setup_bars() -> List[Bar]:
    return create_test_bars(SETUP_CLOSES, step=3600, spread=5.0)
