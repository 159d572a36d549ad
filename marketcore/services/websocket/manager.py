"""
Live Feed Session for real-time bar updates.

Keeps one symbol+timeframe bar sequence current:
- Streaming connection with exponential-backoff reconnect
- Polling fallback whenever the stream is not open
- Periodic full refresh from history

Every update path (stream tick, poll result, refresh) is queued as a
command and applied by a single writer task, which publishes an immutable
BarSnapshot to callbacks and consumer queues.
"""

import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from marketcore.core.config import settings
from marketcore.schemas.market import Bar, BarSnapshot, SnapshotSource, Timeframe
from marketcore.services.base import ServiceError, ValidationError
from marketcore.services.data_ingestion.normalization import (
    epoch_seconds,
    merge_candle,
    merge_tick,
)
from marketcore.services.websocket.interface import LiveFeedSource, LiveStream

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    RECONNECT_SCHEDULED = "reconnect_scheduled"


def reconnect_delay_ms(
    attempt: int,
    base_ms: Optional[int] = None,
    max_ms: Optional[int] = None,
) -> int:
    """Backoff before reconnect attempt `attempt` (1-based): base * 2^(attempt-1), capped."""
    base_ms = settings.reconnect_base_delay_ms if base_ms is None else base_ms
    max_ms = settings.reconnect_max_delay_ms if max_ms is None else max_ms
    attempt = max(1, attempt)
    return min(max_ms, base_ms * 2 ** (attempt - 1))


def parse_stream_message(data: Dict[str, Any], now: float) -> Optional[Tuple[float, int]]:
    """(price, epoch seconds) from a stream message, or None if it carries no price."""
    raw_price = next((data[k] for k in ("p", "price", "close") if data.get(k) is not None), None)
    try:
        price = float(raw_price)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None

    raw_ts = next((data[k] for k in ("t", "timestamp") if data.get(k) is not None), None)
    ts = epoch_seconds(raw_ts) if raw_ts is not None else None
    if ts is None:
        ts = int(now)
    return price, ts


class LiveFeedSession:
    """
    Live bar sequence for one symbol and timeframe.

    Usage:
        session = LiveFeedSession("XAUUSD.FOREX", Timeframe.H1, bars, source)
        queue = session.create_queue("chart")
        await session.start()
        snapshot = await queue.get()
        await session.stop()
    """

    def __init__(
        self,
        symbol: str,
        timeframe: Timeframe,
        bars: List[Bar],
        source: LiveFeedSource,
        poll_interval: Optional[float] = None,
        refresh_interval: Optional[float] = None,
        reconnect_base_ms: Optional[int] = None,
        reconnect_max_ms: Optional[int] = None,
        spike_threshold: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.symbol = symbol
        self.timeframe = Timeframe.parse(timeframe)
        self.source = source
        self.poll_interval = poll_interval if poll_interval is not None else settings.live_poll_interval
        self.refresh_interval = (
            refresh_interval if refresh_interval is not None else settings.live_refresh_interval
        )
        self.reconnect_base_ms = (
            reconnect_base_ms if reconnect_base_ms is not None else settings.reconnect_base_delay_ms
        )
        self.reconnect_max_ms = (
            reconnect_max_ms if reconnect_max_ms is not None else settings.reconnect_max_delay_ms
        )
        self.spike_threshold = (
            spike_threshold if spike_threshold is not None else settings.price_spike_threshold
        )
        self._clock = clock

        self._bars: List[Bar] = list(bars)
        self._version = 0
        self._snapshot: Optional[BarSnapshot] = None
        self._state = ConnectionState.IDLE
        self._attempts = 0
        self._active = False

        self._updates: asyncio.Queue = asyncio.Queue()
        self._polling = asyncio.Event()
        self._stream: Optional[LiveStream] = None
        self._tasks: List[asyncio.Task] = []

        self._callbacks: List[Callable] = []
        self._queues: Dict[str, asyncio.Queue] = {}

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_polling(self) -> bool:
        return self._polling.is_set()

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def bars(self) -> Tuple[Bar, ...]:
        return tuple(self._bars)

    @property
    def snapshot(self) -> Optional[BarSnapshot]:
        return self._snapshot

    # ============ Lifecycle ============

    async def start(self) -> None:
        """Publish the initial snapshot and start the stream, poll and refresh tasks."""
        if self._active:
            logger.warning(f"Live feed for {self.symbol} already running")
            return

        self._active = True
        self._polling.set()
        await self._publish(SnapshotSource.HISTORY)

        self._tasks = [
            asyncio.create_task(self._writer_loop()),
            asyncio.create_task(self._stream_loop()),
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self._refresh_loop()),
        ]
        logger.info(f"Live feed started: {self.symbol} {self.timeframe.value}")

    async def stop(self) -> None:
        """Cancel every task, close the stream and release the bars. Safe to call twice."""
        if not self._active and not self._tasks:
            return

        self._active = False
        self._state = ConnectionState.CLOSED
        self._polling.clear()

        tasks, self._tasks = self._tasks, []
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Live feed task for {self.symbol} failed: {e}")

        await self._close_stream()

        self._callbacks.clear()
        self._queues.clear()
        self._bars = []
        self._updates = asyncio.Queue()
        logger.info(f"Live feed stopped: {self.symbol} {self.timeframe.value}")

    # ============ Observers ============

    def add_callback(self, callback: Callable) -> None:
        """Add a callback to be called with each BarSnapshot."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def create_queue(self, client_id: str, maxsize: int = 100) -> asyncio.Queue:
        """Create a snapshot queue for a consumer."""
        queue = asyncio.Queue(maxsize=maxsize)
        self._queues[client_id] = queue
        if self._snapshot is not None:
            queue.put_nowait(self._snapshot)
        return queue

    def remove_queue(self, client_id: str) -> None:
        self._queues.pop(client_id, None)

    async def _publish(self, source: SnapshotSource) -> None:
        snapshot = BarSnapshot(
            symbol=self.symbol,
            timeframe=self.timeframe,
            bars=tuple(self._bars),
            source=source,
            version=self._version,
            published_at=datetime.now(timezone.utc),
        )
        self._snapshot = snapshot

        for queue in list(self._queues.values()):
            if queue.full():
                # Drop the oldest snapshot
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(snapshot)

        for callback in list(self._callbacks):
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(snapshot)
                else:
                    callback(snapshot)
            except Exception as e:
                logger.warning(f"Snapshot callback error: {e}")

    # ============ Single writer ============

    def _enqueue(self, command: Tuple) -> None:
        if not self._active:
            logger.debug(f"Discarding {command[0]} update after stop")
            return
        self._updates.put_nowait(command)

    async def _writer_loop(self) -> None:
        while self._active:
            command = await self._updates.get()
            if not self._active:
                break
            source = self._apply(command)
            if source is not None:
                self._version += 1
                await self._publish(source)

    def _apply(self, command: Tuple) -> Optional[SnapshotSource]:
        """Mutate the owned sequence. Returns the snapshot source, or None if nothing changed."""
        kind = command[0]
        width = self.timeframe.seconds

        if kind == "tick":
            _, price, ts = command
            self._bars = merge_tick(self._bars, price, ts, width)
            return SnapshotSource.STREAM

        if kind == "candle":
            _, candle = command
            self._bars = merge_candle(self._bars, candle, width)
            return SnapshotSource.POLL

        if kind == "price":
            _, price = command
            if not self._bars:
                return None
            tail = self._bars[-1]
            if abs(price / tail.close - 1) > self.spike_threshold:
                logger.warning(
                    f"Rejected price {price} for {self.symbol}: "
                    f">{self.spike_threshold:.0%} from last close {tail.close}"
                )
                return None
            self._bars = merge_tick(self._bars, price, int(self._clock()), width)
            return SnapshotSource.POLL

        if kind == "replace":
            _, bars = command
            if not bars:
                return None
            self._bars = list(bars)
            return SnapshotSource.REFRESH

        raise ValueError(f"Unknown update command: {kind}")

    # ============ Stream ============

    async def _stream_loop(self) -> None:
        """Connect, subscribe, consume; on close resume polling and back off."""
        while self._active:
            self._state = ConnectionState.CONNECTING
            try:
                self._stream = await self.source.open_stream(self.symbol)
                self._on_open()
                await self._stream.subscribe()
                async for message in self._stream.messages():
                    self._on_message(message)
                logger.warning(f"Stream closed for {self.symbol}")
            except ValidationError as e:
                # No credentials: streaming is impossible, polling carries the feed
                logger.warning(f"Streaming disabled for {self.symbol}: {e.message}")
                await self._close_stream()
                self._on_closed()
                return
            except ServiceError as e:
                logger.warning(f"Stream error for {self.symbol}: {e.message}")
            except Exception as e:
                logger.error(f"Unexpected stream error for {self.symbol}: {e}")
            finally:
                await self._close_stream()

            if not self._active:
                break
            self._on_closed()
            delay = self._schedule_reconnect()
            logger.info(f"Reconnecting {self.symbol} in {delay}ms (attempt {self._attempts})")
            await asyncio.sleep(delay / 1000)

    def _on_open(self) -> None:
        self._attempts = 0
        self._state = ConnectionState.OPEN
        self._polling.clear()
        logger.info(f"Stream open for {self.symbol}, polling suspended")

    def _on_closed(self) -> None:
        self._state = ConnectionState.CLOSED
        self._polling.set()

    def _schedule_reconnect(self) -> int:
        self._attempts += 1
        self._state = ConnectionState.RECONNECT_SCHEDULED
        return reconnect_delay_ms(self._attempts, self.reconnect_base_ms, self.reconnect_max_ms)

    def _on_message(self, message: Dict[str, Any]) -> None:
        parsed = parse_stream_message(message, self._clock())
        if parsed is None:
            logger.debug(f"Ignoring stream message: {message}")
            return
        price, ts = parsed
        self._enqueue(("tick", price, ts))

    async def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                await stream.close()
            except ServiceError as e:
                logger.debug(f"Stream close error: {e}")

    # ============ Polling fallback ============

    async def _poll_loop(self) -> None:
        while self._active:
            await self._polling.wait()
            if not self._active:
                break
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Poll error for {self.symbol}: {e}")
            await asyncio.sleep(self.poll_interval)

    async def poll_once(self) -> None:
        """Merge the last candle if available, else a bare price."""
        candle: Optional[Bar] = None
        try:
            candle = await self.source.fetch_last_candle(self.symbol, self.timeframe)
        except ServiceError as e:
            logger.debug(f"Last candle unavailable for {self.symbol}: {e.message}")

        if candle is not None:
            self._enqueue(("candle", candle))
            return

        try:
            price = await self.source.fetch_last_price(self.symbol)
        except ServiceError as e:
            logger.debug(f"Last price unavailable for {self.symbol}: {e.message}")
            return

        if price is not None and math.isfinite(price) and price > 0:
            self._enqueue(("price", price))

    # ============ Periodic refresh ============

    async def _refresh_loop(self) -> None:
        while self._active:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh_once()
            except Exception as e:
                logger.error(f"Refresh error for {self.symbol}: {e}")

    async def refresh_once(self) -> None:
        """Replace the sequence with fresh history; keep the old one on failure."""
        try:
            bars = await self.source.fetch_history(self.symbol, self.timeframe)
        except ServiceError as e:
            logger.warning(f"Refresh failed for {self.symbol}, keeping previous bars: {e.message}")
            return
        self._enqueue(("replace", bars))


async def start_live_feed(
    symbol: str,
    timeframe: Timeframe,
    source: Optional[LiveFeedSource] = None,
    **kwargs: Any,
) -> LiveFeedSession:
    """Fetch history, then create and start a live session for it."""
    if source is None:
        from marketcore.services.websocket.eodhd_source import EODHDLiveSource
        source = EODHDLiveSource()
    timeframe = Timeframe.parse(timeframe)
    bars = await source.fetch_history(symbol, timeframe)
    session = LiveFeedSession(symbol, timeframe, bars, source, **kwargs)
    await session.start()
    return session
