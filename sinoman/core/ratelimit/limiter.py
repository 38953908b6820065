"""Fixed-window rate limiter.

Every identifier gets its own window of ``window_ms`` starting at its first
request. Requests are counted even when rejected, so ``total_hits`` reflects
real traffic and may exceed ``max_requests``.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

from sinoman.core.config import RateLimitConfig, get_settings

from .store import MemoryStore, RateLimitEntry, RateLimitStore, RedisStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int  # epoch milliseconds
    total_hits: int


class RateLimiter:
    """
    Admit/reject decisions per identifier.

    Usage:
        limiter = RateLimiter(MemoryStore())
        result = await limiter.check_limit("auth:203.0.113.7", RateLimitConfig(5, 900_000))
        if not result.allowed:
            ...
    """

    def __init__(self, store: Optional[RateLimitStore] = None, clock: Optional[Callable[[], int]] = None):
        self.store = store or MemoryStore()
        self.clock = clock or now_ms
        self._sweeper: Optional[asyncio.Task] = None

    async def check_limit(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request and decide whether it is admitted."""
        entry = await self.store.hit(identifier, config.window_ms, self.clock())
        return RateLimitResult(
            allowed=entry.count <= config.max_requests,
            remaining=max(0, config.max_requests - entry.count),
            reset_time=entry.reset_time,
            total_hits=entry.count,
        )

    async def get_status(self, identifier: str) -> Optional[RateLimitEntry]:
        """
        Current entry for identifier without counting a request.

        Expired entries are returned as stored; check ``is_expired`` before
        treating one as active.
        """
        return await self.store.peek(identifier)

    async def reset(self, identifier: str) -> None:
        await self.store.delete(identifier)

    async def sweep(self) -> int:
        removed = await self.store.sweep(self.clock())
        if removed:
            logger.debug("[RATE_LIMITER] Swept %d expired entries", removed)
        return removed

    async def _sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("[RATE_LIMITER] Sweep failed")

    def start_sweeper(self, interval_seconds: float = 300) -> asyncio.Task:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(interval_seconds))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter using the configured backend."""
    settings = get_settings()
    if settings.rate_limit_backend == "redis":
        store: RateLimitStore = RedisStore(settings.redis_url)
    else:
        store = MemoryStore()
    return RateLimiter(store)
