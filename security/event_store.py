"""
Rolling-window failure counters.

Every failed attempt is stored as its own entry with its own expiry, so a
count always covers exactly the last `window` seconds. There is no shared
counter to reset, which is what keeps the window rolling instead of fixed.
"""
import logging
import threading
import time
import uuid
from collections import defaultdict

import redis

from models.anomaly import SCOPE_ACCOUNT, SCOPE_ORIGIN
from security.errors import StoreUnavailable

logger = logging.getLogger(__name__)

SCOPES = (SCOPE_ORIGIN, SCOPE_ACCOUNT)


def _check_scope(scope: str) -> None:
    if scope not in SCOPES:
        raise ValueError(f"Unknown scope: {scope!r}")


class EventStore:
    """
    record(scope, scope_id, window_seconds) adds one independent entry.
    count(scope, scope_id) returns how many entries have not yet expired.
    Backend failures are raised as StoreUnavailable.
    """

    def record(self, scope: str, scope_id: str, window_seconds: int) -> None:
        raise NotImplementedError

    def count(self, scope: str, scope_id: str) -> int:
        raise NotImplementedError


class MemoryEventStore(EventStore):
    """
    In-process store for development and tests. Only correct for a single
    worker process; use RedisEventStore when running more than one.

    Keys are pruned when counted, and every `sweep_interval` seconds a full
    pass drops keys nobody has counted since their entries expired.
    """

    def __init__(self, clock=time.monotonic, sweep_interval: float = 60.0):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries = defaultdict(list)  # (scope, scope_id) -> [expires_at, ...]
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def _prune(self, key, now: float) -> list:
        live = [exp for exp in self._entries.get(key, ()) if exp > now]
        if live:
            self._entries[key] = live
        else:
            self._entries.pop(key, None)
        return live

    def _maybe_sweep(self, now: float) -> None:
        # caller holds the lock
        if now < self._next_sweep:
            return
        for key in list(self._entries):
            self._prune(key, now)
        self._next_sweep = now + self._sweep_interval

    def record(self, scope: str, scope_id: str, window_seconds: int) -> None:
        _check_scope(scope)
        now = self._clock()
        with self._lock:
            self._maybe_sweep(now)
            self._entries[(scope, scope_id)].append(now + window_seconds)

    def count(self, scope: str, scope_id: str) -> int:
        _check_scope(scope)
        now = self._clock()
        with self._lock:
            self._maybe_sweep(now)
            return len(self._prune((scope, scope_id), now))

    def key_count(self) -> int:
        """Number of (scope, scope_id) keys currently held."""
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisEventStore(EventStore):
    """
    One sorted set per scope key, <prefix>:<scope>:<scope_id>. Each attempt
    is a unique member scored with its own expiry time, so the window still
    rolls per attempt. Counting is a ZCOUNT over unexpired scores; expired
    members are trimmed on write and the whole key carries a TTL.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "loginguard:attempt", clock=time.time):
        self.client = client
        self.key_prefix = key_prefix
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "loginguard:attempt", socket_timeout: float = 2.0):
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, key_prefix=key_prefix)

    def _key(self, scope: str, scope_id: str) -> str:
        return f"{self.key_prefix}:{scope}:{scope_id}"

    def record(self, scope: str, scope_id: str, window_seconds: int) -> None:
        _check_scope(scope)
        key = self._key(scope, scope_id)
        now = self._clock()
        ttl = max(int(window_seconds), 1)
        try:
            pipe = self.client.pipeline()
            pipe.zadd(key, {uuid.uuid4().hex: now + window_seconds})
            pipe.zremrangebyscore(key, "-inf", now)
            pipe.expire(key, ttl)
            pipe.execute()
        except redis.RedisError as exc:
            raise StoreUnavailable(f"event store write failed: {exc}") from exc

    def count(self, scope: str, scope_id: str) -> int:
        _check_scope(scope)
        now = self._clock()
        try:
            # exclusive lower bound: an entry expiring exactly now is gone
            return int(self.client.zcount(self._key(scope, scope_id), f"({now}", "+inf"))
        except redis.RedisError as exc:
            raise StoreUnavailable(f"event store read failed: {exc}") from exc


def build_event_store(config) -> EventStore:
    backend = (config.get("EVENT_STORE_BACKEND") or "memory").lower()

    if backend == "memory":
        logger.info("Using in-process event store")
        return MemoryEventStore()

    if backend == "redis":
        url = config.get("REDIS_URL")
        logger.info("Using redis event store at %s", url)
        return RedisEventStore.from_url(
            url,
            key_prefix=config.get("REDIS_KEY_PREFIX", "loginguard:attempt"),
            socket_timeout=config.get("REDIS_SOCKET_TIMEOUT", 2.0),
        )

    raise ValueError(f"Invalid EVENT_STORE_BACKEND, expected 'memory' or 'redis', received {backend!r}")
