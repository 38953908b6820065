"""Rate limit entry stores.

A store keeps one fixed-window entry per key. ``hit`` is the only write used
on the request path and must be atomic per key: it either opens a new window
(count 1) or increments the count of the current one.

An entry is expired once ``now > reset_time``; expired entries are treated as
absent by ``get`` and ``hit``.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_time: int  # epoch milliseconds
    last_request: int  # epoch milliseconds

    def is_expired(self, now: int) -> bool:
        return now > self.reset_time


class RateLimitStore(ABC):
    """Key-value store for rate limit entries. All times are epoch milliseconds."""

    @abstractmethod
    async def get(self, key: str, now: int) -> Optional[RateLimitEntry]:
        """Return the live entry for key, dropping it if expired."""

    @abstractmethod
    async def peek(self, key: str) -> Optional[RateLimitEntry]:
        """Return the stored entry as-is, expired or not, without mutating it."""

    @abstractmethod
    async def set(self, key: str, entry: RateLimitEntry) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def hit(self, key: str, window_ms: int, now: int) -> RateLimitEntry:
        """Count one request against key and return the updated entry."""

    @abstractmethod
    async def sweep(self, now: int) -> int:
        """Delete expired entries. Returns the number removed."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class MemoryStore(RateLimitStore):
    """
    Process-local store.

    Counters are not shared between processes, so with N workers the effective
    limit is N times the configured one. Use RedisStore for a shared limit.
    """

    def __init__(self):
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str, now: int) -> Optional[RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return RateLimitEntry(entry.count, entry.reset_time, entry.last_request)

    async def peek(self, key: str) -> Optional[RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return RateLimitEntry(entry.count, entry.reset_time, entry.last_request)

    async def set(self, key: str, entry: RateLimitEntry) -> None:
        with self._lock:
            self._entries[key] = RateLimitEntry(entry.count, entry.reset_time, entry.last_request)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    async def hit(self, key: str, window_ms: int, now: int) -> RateLimitEntry:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                entry = RateLimitEntry(count=1, reset_time=now + window_ms, last_request=now)
                self._entries[key] = entry
            else:
                entry.count += 1
                entry.last_request = now
            return RateLimitEntry(entry.count, entry.reset_time, entry.last_request)

    async def sweep(self, now: int) -> int:
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)


# KEYS[1] = entry key, ARGV[1] = now (ms), ARGV[2] = window (ms)
HIT_SCRIPT = """
local reset = tonumber(redis.call('HGET', KEYS[1], 'reset_time'))
local now = tonumber(ARGV[1])
if (not reset) or now > reset then
    reset = now + tonumber(ARGV[2])
    redis.call('HSET', KEYS[1], 'count', 1, 'reset_time', reset, 'last_request', now)
    redis.call('PEXPIRE', KEYS[1], ARGV[2])
    return {1, reset}
end
local count = redis.call('HINCRBY', KEYS[1], 'count', 1)
redis.call('HSET', KEYS[1], 'last_request', now)
return {count, reset}
"""


class RedisStore(RateLimitStore):
    """
    Shared store backed by Redis.

    Each entry is a hash under ``ratelimit:<key>`` that expires at the end of
    its window, so ``sweep`` has nothing to do.
    """

    def __init__(self, redis_url: str, prefix: str = "ratelimit:", client: Optional[redis.Redis] = None):
        self.prefix = prefix
        self.client = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        self._hit_script = self.client.register_script(HIT_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @staticmethod
    def _parse(data: Dict[str, str]) -> Optional[RateLimitEntry]:
        if not data:
            return None
        return RateLimitEntry(
            count=int(data["count"]),
            reset_time=int(data["reset_time"]),
            last_request=int(data.get("last_request", 0)),
        )

    async def get(self, key: str, now: int) -> Optional[RateLimitEntry]:
        entry = self._parse(await self.client.hgetall(self._key(key)))
        if entry is not None and entry.is_expired(now):
            await self.client.delete(self._key(key))
            return None
        return entry

    async def peek(self, key: str) -> Optional[RateLimitEntry]:
        return self._parse(await self.client.hgetall(self._key(key)))

    async def set(self, key: str, entry: RateLimitEntry) -> None:
        redis_key = self._key(key)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(
                redis_key,
                mapping={
                    "count": entry.count,
                    "reset_time": entry.reset_time,
                    "last_request": entry.last_request,
                },
            )
            pipe.pexpireat(redis_key, entry.reset_time)
            await pipe.execute()

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def hit(self, key: str, window_ms: int, now: int) -> RateLimitEntry:
        count, reset_time = await self._hit_script(keys=[self._key(key)], args=[now, window_ms])
        return RateLimitEntry(count=int(count), reset_time=int(reset_time), last_request=now)

    async def sweep(self, now: int) -> int:
        return 0

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.close()
