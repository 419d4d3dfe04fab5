"""
Process-local publish/subscribe for proposal snapshots.

Best-effort and non-durable: subscribers only see events published while they
are connected, a slow subscriber loses its oldest queued events, and nothing
survives a restart. The database is the source of truth; this only feeds the
live ``/proposal?stream=true`` connections of this process.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)


class Subscription:
    """One open stream's queue. Use as an async context manager to auto-unsubscribe."""

    def __init__(self, broadcaster: "ProposalBroadcaster", queue_size: int, session_id: str | None = None):
        self._broadcaster = broadcaster
        self.session_id = session_id
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max(1, queue_size))
        self.dropped = 0

    def wants(self, event: dict[str, Any]) -> bool:
        return self.session_id is None or event.get("sessionId") == self.session_id

    def offer(self, event: dict[str, Any]) -> None:
        """Enqueue without blocking; on overflow drop the oldest queued event."""
        if self.queue.full():
            try:
                self.queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(event)

    async def next_event(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Wait for the next event; None when *timeout* elapses first."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()


class ProposalBroadcaster:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: set[Subscription] = set()

    def subscribe(self, session_id: str | None = None) -> Subscription:
        sub = Subscription(self, self.queue_size, session_id=session_id)
        self._subscribers.add(sub)
        logger.debug("Stream subscribed (session=%s, total=%d)", session_id, len(self._subscribers))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscribers.discard(sub)
        if sub.dropped:
            logger.info("Stream closed after dropping %d events (session=%s)", sub.dropped, sub.session_id)

    def publish(self, event: dict[str, Any]) -> int:
        """Deliver *event* to every interested subscriber. Returns how many received it."""
        delivered = 0
        for sub in list(self._subscribers):
            if sub.wants(event):
                sub.offer(event)
                delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
