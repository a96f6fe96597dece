"""
FetchCoalescer - single-flight for concurrent upstream fetches.

When several requests miss the cache for the same key at the same time,
only the first one (the leader) calls the upstream API. The others await
the leader's task and receive its result or its exception.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")


class FetchCoalescer:
    """
    Coalesces concurrent async fetches that share a key.

    Usage:
        coalescer = FetchCoalescer()

        data = await coalescer.run(
            cache_key,
            lambda: client.fetch("/machines/abc/", None, signal),
        )
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._lock = asyncio.Lock()
        self._debug = debug
        self._stats = CoalescerStats()

    async def run(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fetch_fn unless a fetch for key is already in flight.

        Args:
            key: Identity of the fetch (the cache key)
            fetch_fn: Coroutine factory performing the fetch

        Returns:
            Result of the leader's fetch
        """
        async with self._lock:
            task = self._in_flight.get(key)
            if task is not None:
                self._stats.coalesced += 1
                self._log(f"JOIN: {key[:50]}...")
            else:
                self._stats.leaders += 1
                self._log(f"LEAD: {key[:50]}...")
                task = asyncio.ensure_future(fetch_fn())
                self._in_flight[key] = task
                task.add_done_callback(lambda _t, k=key: self._forget(k, _t))

        # A follower giving up must not cancel the leader's fetch
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            self._log(f"FAILED: {key[:50]}...")
        else:
            self._log(f"DONE: {key[:50]}...")

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def get_stats(self) -> "CoalescerStats":
        """Get coalescing statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[FetchCoalescer] {message}")


class CoalescerStats:
    """Statistics for fetch coalescing."""

    def __init__(self):
        self.leaders: int = 0  # Fetches actually sent upstream
        self.coalesced: int = 0  # Requests that joined an in-flight fetch
        self.in_flight: int = 0

    @property
    def coalesce_rate(self) -> float:
        total = self.leaders + self.coalesced
        if total == 0:
            return 0.0
        return self.coalesced / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "leaders": self.leaders,
            "coalesced": self.coalesced,
            "in_flight": self.in_flight,
            "coalesce_rate": f"{self.coalesce_rate:.2%}",
        }
