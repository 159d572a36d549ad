"""Tests for the live feed session: stream merge, polling fallback, reconnect and refresh."""
import asyncio
from typing import List, Optional

import pytest

from conftest import BASE_TIME, create_test_bars, make_bar
from marketcore.schemas.market import SnapshotSource, Timeframe
from marketcore.services.base import UpstreamUnavailableError, ValidationError
from marketcore.services.websocket.interface import LiveFeedSource, LiveStream
from marketcore.services.websocket.manager import (
    ConnectionState,
    LiveFeedSession,
    parse_stream_message,
    reconnect_delay_ms,
)

NOW = BASE_TIME + 3600 + 120


class FakeStream(LiveStream):
    """Yields queued messages; a None message ends the connection."""

    def __init__(self):
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.subscribed = False
        self.closed = False

    async def subscribe(self):
        self.subscribed = True

    async def messages(self):
        while True:
            message = await self.inbox.get()
            if message is None:
                return
            yield message

    async def close(self):
        self.closed = True


class FakeSource(LiveFeedSource):
    def __init__(self, streams=None, stream_error=None, candles=None, prices=None, history=None):
        self.streams: List[FakeStream] = list(streams or [])
        self.opened: List[FakeStream] = []
        self.stream_error = stream_error
        self.candles = list(candles or [])
        self.prices = list(prices or [])
        self.history = history

    async def open_stream(self, symbol):
        if self.stream_error is not None:
            raise self.stream_error
        if not self.streams:
            raise UpstreamUnavailableError("FakeSource", "no more streams")
        stream = self.streams.pop(0)
        self.opened.append(stream)
        return stream

    async def fetch_last_candle(self, symbol, timeframe):
        return self.candles.pop(0) if self.candles else None

    async def fetch_last_price(self, symbol) -> Optional[float]:
        return self.prices.pop(0) if self.prices else None

    async def fetch_history(self, symbol, timeframe):
        if isinstance(self.history, Exception):
            raise self.history
        return self.history


def make_session(source, **kwargs):
    params = dict(
        poll_interval=0.01,
        refresh_interval=3600,
        reconnect_base_ms=10_000,
        reconnect_max_ms=30_000,
        clock=lambda: NOW,
    )
    params.update(kwargs)
    bars = create_test_bars([100.0, 101.0])
    return LiveFeedSession("XAUUSD.FOREX", Timeframe.H1, bars, source, **params)


async def next_snapshot(queue):
    return await asyncio.wait_for(queue.get(), timeout=2)


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


class TestReconnectDelay:
    @pytest.mark.parametrize(
        "attempt,expected",
        [(0, 1000), (1, 1000), (2, 2000), (3, 4000), (4, 8000), (5, 16000), (6, 30000), (10, 30000)],
    )
    def test_backoff(self, attempt, expected):
        assert reconnect_delay_ms(attempt, 1000, 30000) == expected


class TestParseStreamMessage:
    def test_short_keys_and_ms_timestamp(self):
        assert parse_stream_message({"p": "1.5", "t": 1_700_000_000_000}, 0) == (1.5, 1_700_000_000)

    def test_defaults_time_to_now(self):
        assert parse_stream_message({"price": 2}, 123.9) == (2.0, 123)

    def test_without_price(self):
        assert parse_stream_message({"t": 5}, 0) is None
        assert parse_stream_message({"p": -1}, 0) is None
        assert parse_stream_message({"status_code": 200, "message": "Authorized"}, 0) is None


class TestStreaming:
    async def test_initial_history_snapshot(self):
        stream = FakeStream()
        session = make_session(FakeSource(streams=[stream]))
        queue = session.create_queue("chart")
        await session.start()
        try:
            snapshot = await next_snapshot(queue)
            assert snapshot.source == SnapshotSource.HISTORY
            assert snapshot.version == 0
            assert snapshot.last_price == 101.0
        finally:
            await session.stop()

    async def test_open_suspends_polling(self):
        stream = FakeStream()
        session = make_session(FakeSource(streams=[stream]))
        await session.start()
        try:
            await wait_until(lambda: session.state == ConnectionState.OPEN)
            assert stream.subscribed
            assert not session.is_polling
        finally:
            await session.stop()

    async def test_tick_merges_into_tail(self):
        stream = FakeStream()
        session = make_session(FakeSource(streams=[stream]))
        received = []
        session.add_callback(received.append)
        queue = session.create_queue("chart")
        await session.start()
        try:
            await next_snapshot(queue)
            await stream.inbox.put({"p": 108.0, "t": BASE_TIME + 3600 + 60})
            snapshot = await next_snapshot(queue)
            assert snapshot.source == SnapshotSource.STREAM
            assert snapshot.version == 1
            assert len(snapshot.bars) == 2
            assert snapshot.bars[-1].high == 108.0
            assert snapshot.bars[-1].close == 108.0
            assert [s.version for s in received] == [0, 1]
        finally:
            await session.stop()

    async def test_close_schedules_reconnect_and_resumes_polling(self):
        stream = FakeStream()
        session = make_session(FakeSource(streams=[stream]))
        await session.start()
        try:
            await wait_until(lambda: session.state == ConnectionState.OPEN)
            await stream.inbox.put(None)
            await wait_until(lambda: session.reconnect_attempts == 1)
            assert session.state == ConnectionState.RECONNECT_SCHEDULED
            assert session.is_polling
            assert stream.closed
        finally:
            await session.stop()

    async def test_successful_reconnect_resets_attempts(self):
        first, second = FakeStream(), FakeStream()
        source = FakeSource(streams=[first, second])
        session = make_session(source, reconnect_base_ms=1)
        await session.start()
        try:
            await wait_until(lambda: source.opened == [first])
            await first.inbox.put(None)
            await wait_until(lambda: len(source.opened) == 2 and session.state == ConnectionState.OPEN)
            assert session.reconnect_attempts == 0
            assert not session.is_polling
        finally:
            await session.stop()


class TestPolling:
    async def test_missing_credentials_leave_polling_on(self):
        source = FakeSource(stream_error=ValidationError("EODHDClient", "API token is not configured"))
        session = make_session(source)
        await session.start()
        try:
            await wait_until(lambda: session.state == ConnectionState.CLOSED)
            assert session.is_polling
            assert session.reconnect_attempts == 0
        finally:
            await session.stop()

    async def test_candle_merge(self):
        candle = make_bar(BASE_TIME + 3600, 101.0, 110.0, 99.0, 104.0)
        source = FakeSource(stream_error=ValidationError("EODHDClient", "no token"), candles=[candle])
        session = make_session(source)
        queue = session.create_queue("chart")
        await session.start()
        try:
            await next_snapshot(queue)
            snapshot = await next_snapshot(queue)
            assert snapshot.source == SnapshotSource.POLL
            assert snapshot.bars[-1].high == 110.0
            assert snapshot.bars[-1].close == 104.0
            assert snapshot.bars[-1].volume == 100.0
        finally:
            await session.stop()

    async def test_price_spike_rejected(self):
        source = FakeSource(stream_error=ValidationError("EODHDClient", "no token"), prices=[150.0, 102.0])
        session = make_session(source)
        queue = session.create_queue("chart")
        await session.start()
        try:
            await next_snapshot(queue)
            snapshot = await next_snapshot(queue)
            assert snapshot.version == 1
            assert snapshot.bars[-1].close == 102.0
            assert snapshot.bars[-1].high == 106.0
        finally:
            await session.stop()


class TestRefresh:
    async def test_refresh_replaces_sequence(self):
        fresh = create_test_bars([200.0, 201.0, 202.0])
        session = make_session(FakeSource(streams=[FakeStream()], history=fresh))
        queue = session.create_queue("chart")
        await session.start()
        try:
            await next_snapshot(queue)
            await session.refresh_once()
            snapshot = await next_snapshot(queue)
            assert snapshot.source == SnapshotSource.REFRESH
            assert list(snapshot.bars) == fresh
        finally:
            await session.stop()

    async def test_failed_refresh_keeps_bars(self):
        source = FakeSource(streams=[FakeStream()], history=UpstreamUnavailableError("EODHDClient", "timeout"))
        session = make_session(source)
        await session.start()
        try:
            before = session.bars
            await session.refresh_once()
            await asyncio.sleep(0.01)
            assert session.bars == before
            assert session.snapshot.version == 0
        finally:
            await session.stop()


class BrokenSource(FakeSource):
    """Source whose calls fail with errors outside the service hierarchy."""

    async def open_stream(self, symbol):
        raise RuntimeError("unexpected")

    async def fetch_last_candle(self, symbol, timeframe):
        raise RuntimeError("unexpected")


class TestUnexpectedErrors:
    async def test_stream_error_schedules_reconnect(self):
        session = make_session(BrokenSource())
        await session.start()
        try:
            await wait_until(lambda: session.reconnect_attempts == 1)
            assert session.state == ConnectionState.RECONNECT_SCHEDULED
            assert session.is_polling
        finally:
            await session.stop()

        assert not session.is_active
        assert session.bars == ()

    async def test_poll_error_keeps_polling(self):
        session = make_session(BrokenSource(), reconnect_base_ms=60_000)
        calls = []
        original = session.poll_once

        async def counting_poll():
            calls.append(1)
            await original()

        session.poll_once = counting_poll
        await session.start()
        try:
            await wait_until(lambda: len(calls) >= 2)
        finally:
            await session.stop()
        assert session.bars == ()


class TestStop:
    async def test_stop_releases_everything(self):
        stream = FakeStream()
        session = make_session(FakeSource(streams=[stream], history=create_test_bars([1.0])))
        await session.start()
        await wait_until(lambda: session.state == ConnectionState.OPEN)

        await session.stop()
        await session.stop()

        assert not session.is_active
        assert session.state == ConnectionState.CLOSED
        assert session.bars == ()
        assert stream.closed

    async def test_updates_after_stop_are_discarded(self):
        session = make_session(FakeSource(streams=[FakeStream()], history=create_test_bars([1.0])))
        await session.start()
        await session.stop()
        version = session.snapshot.version

        await session.refresh_once()
        await asyncio.sleep(0.01)
        assert session.snapshot.version == version
        assert session.bars == ()
