"""
Server-sent event channels keyed by produce request id.

Route handlers publish named events (``order-accepted`` and friends) for a
produce request; whoever holds the stream for that request receives them.
One channel is kept per request id: a new subscriber replaces and closes the
previous one.

Channels live on the event loop that serves the stream, so an open stream
costs no worker thread. Publishers run on threadpool routes and hand events
over with ``loop.call_soon_threadsafe``.
"""

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)


class ChannelClosed(Exception):
    pass


@dataclass(frozen=True)
class Event:
    name: str
    data: str = ""

    def encode(self) -> str:
        lines = [f"event: {self.name}"]
        lines.extend(f"data: {line}" for line in (self.data.splitlines() or [""]))
        return "\n".join(lines) + "\n\n"


HEARTBEAT = ": ping\n\n"
_CLOSE = object()


class Subscription:
    def __init__(self, request_id: str, queue_size: int, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.request_id = request_id
        self.queue_size = queue_size
        self._loop = loop or asyncio.get_running_loop()
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        # events handed over but not yet read; bounds the queue across threads
        self._pending = 0
        self._lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: Event) -> None:
        """Queue an event from any thread; ``ChannelClosed`` when closed or full."""
        with self._lock:
            if self.closed or self._pending >= self.queue_size:
                raise ChannelClosed(self.request_id)
            self._pending += 1
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # the serving loop is gone
            self._closed.set()
            raise ChannelClosed(self.request_id)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSE)
        except RuntimeError:
            pass

    async def next_event(self, timeout: float) -> Optional[Event]:
        """Wait for the next event; ``None`` on timeout, ``ChannelClosed`` when closed."""
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            if self.closed:
                raise ChannelClosed(self.request_id)
            return None
        if item is _CLOSE:
            raise ChannelClosed(self.request_id)
        with self._lock:
            self._pending -= 1
        return item


class EventBroker:
    def __init__(self, heartbeat_seconds: float = 15.0, idle_timeout_seconds: float = 1800.0, queue_size: int = 100):
        self.heartbeat_seconds = heartbeat_seconds
        self.idle_timeout_seconds = idle_timeout_seconds
        self.queue_size = queue_size
        self._channels: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)

    def get(self, request_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._channels.get(request_id)

    def subscribe(self, request_id: str, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        """Open the channel for ``request_id`` on ``loop`` (the running loop by default)."""
        subscription = Subscription(request_id, self.queue_size, loop)
        with self._lock:
            previous = self._channels.get(request_id)
            self._channels[request_id] = subscription
        if previous is not None:
            logger.info("Replacing stream for request %s", request_id)
            previous.close()
        logger.info("Stream for request %s set", request_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if self._channels.get(subscription.request_id) is subscription:
                del self._channels[subscription.request_id]
        subscription.close()

    def publish(self, request_id: str, name: str, payload: Any = "") -> bool:
        subscription = self.get(request_id)
        if subscription is None:
            logger.debug("No stream for request %s, dropping %s", request_id, name)
            return False

        data = payload if isinstance(payload, str) else json.dumps(payload, default=str)
        try:
            subscription.offer(Event(name, data))
        except ChannelClosed:
            logger.warning("Stream for request %s is gone, tearing it down", request_id)
            self.unsubscribe(subscription)
            return False

        logger.debug("Published %s to request %s", name, request_id)
        return True

    async def stream(self, subscription: Subscription) -> AsyncIterator[str]:
        """Yield SSE frames until the channel closes, the client leaves or it sits idle too long."""
        last_event = time.monotonic()
        try:
            while True:
                try:
                    event = await subscription.next_event(timeout=self.heartbeat_seconds)
                except ChannelClosed:
                    logger.info("Stream for request %s completed", subscription.request_id)
                    return

                if event is not None:
                    last_event = time.monotonic()
                    yield event.encode()
                    continue

                if time.monotonic() - last_event >= self.idle_timeout_seconds:
                    logger.info("Stream for request %s timed out", subscription.request_id)
                    return
                yield HEARTBEAT
        finally:
            self.unsubscribe(subscription)

    def shutdown(self) -> None:
        with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()
        for subscription in channels:
            subscription.close()
        logger.info("Closed %d event streams", len(channels))
