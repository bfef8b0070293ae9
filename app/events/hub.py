"""
In-process notification hub: one live push channel per user.

Delivery is best effort and at most once. Nothing is queued for users
without a live subscriber and nothing is replayed on reconnect; clients
resynchronise by listing their invoices after (re)connecting.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)

_CLOSE = object()


class SubscriberClosed(Exception):
    """Write attempted on a closed subscriber handle."""


class SubscriberHandle:
    """A single live push channel, backed by a bounded queue."""

    def __init__(self, user_id: str, max_queue: int = 100):
        self.user_id = user_id
        self.replaced: Optional["SubscriberHandle"] = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close_replaced(self) -> None:
        """Close the channel this one superseded and drop the reference to it."""
        previous, self.replaced = self.replaced, None
        if previous is not None:
            previous.close()

    def send(self, event: Dict[str, Any]) -> None:
        """Enqueue without waiting. Raises on a closed or backed-up channel."""
        if self._closed:
            raise SubscriberClosed(self.user_id)
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop the channel; the reader finishes after draining queued events."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            # Reader is hopelessly behind; drop the backlog so it sees the close.
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(_CLOSE)

    async def events(self, keepalive_seconds: Optional[float] = None) -> AsyncIterator[Optional[Dict[str, Any]]]:
        """
        Yield queued events until the handle is closed.

        Yields None when `keepalive_seconds` pass without an event so the
        transport can write a heartbeat.
        """
        while True:
            try:
                if keepalive_seconds:
                    item = await asyncio.wait_for(self._queue.get(), timeout=keepalive_seconds)
                else:
                    item = await self._queue.get()
            except asyncio.TimeoutError:
                yield None
                continue
            if item is _CLOSE:
                return
            yield item


class NotificationHub:
    """Registry of live subscribers keyed by user id, guarded by a lock."""

    def __init__(self, max_queue: int = 100):
        self._max_queue = max_queue
        self._subscribers: Dict[str, SubscriberHandle] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._subscribers)

    def is_subscribed(self, user_id: str) -> bool:
        return user_id in self._subscribers

    async def subscribe(self, user_id: str) -> SubscriberHandle:
        """
        Register a new channel for the user.

        A previous channel is superseded but not closed here; it is exposed as
        `handle.replaced` until the caller closes it with `close_replaced()`.
        """
        handle = SubscriberHandle(user_id, max_queue=self._max_queue)
        async with self._lock:
            handle.replaced = self._subscribers.get(user_id)
            self._subscribers[user_id] = handle
        if handle.replaced is not None:
            logger.info(f"Replaced event subscriber for user {user_id}")
        else:
            logger.info(f"Event subscriber connected for user {user_id}")
        return handle

    async def unsubscribe(self, user_id: str, handle: Optional[SubscriberHandle] = None) -> bool:
        """
        Remove the user's registration. With `handle`, only removes it if it is
        still the registered one. Returns True if something was removed.
        """
        async with self._lock:
            current = self._subscribers.get(user_id)
            if current is None or (handle is not None and current is not handle):
                return False
            del self._subscribers[user_id]
        logger.info(f"Event subscriber disconnected for user {user_id}")
        return True

    async def publish(self, user_id: str, event: Dict[str, Any]) -> bool:
        """
        Deliver to the user's live channel, if any. Returns True if the event
        was handed to a channel. A failed write drops the registration.
        """
        async with self._lock:
            handle = self._subscribers.get(user_id)
            if handle is None:
                return False
            try:
                handle.send(event)
                return True
            except (asyncio.QueueFull, SubscriberClosed) as e:
                del self._subscribers[user_id]
                handle.close()
                logger.warning(f"Dropped event subscriber for user {user_id}: {type(e).__name__}")
                return False

    async def close(self) -> None:
        """Close every channel. Used at application shutdown."""
        async with self._lock:
            handles = list(self._subscribers.values())
            self._subscribers.clear()
        for handle in handles:
            handle.close()
        if handles:
            logger.info(f"Closed {len(handles)} event subscriber(s)")
