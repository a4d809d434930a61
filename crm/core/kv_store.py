"""
Key-value store used for rate-limit counters and idempotency records.

``RedisKeyValueStore`` talks to a hosted Redis; ``InMemoryKeyValueStore`` is
a process-local stand-in for tests. Neither holds application data: the
relational database stays the source of truth.
"""
import threading
import time
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlparse
import redis
from crm.core.config import settings


class KeyValueStore:
    """Minimal contract the API needs from a key-value store."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl_seconds: int, only_if_absent: bool = False) -> bool:
        """Store a value with a TTL. Returns False if only_if_absent and the key exists."""
        raise NotImplementedError

    def incr(self, key: str, ttl_seconds: int) -> Tuple[int, int]:
        """Increment a counter, starting its TTL on first use. Returns (count, seconds_to_reset)."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        raise NotImplementedError


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        parsed = urlparse(url)
        kwargs = {
            "decode_responses": True,
            "socket_connect_timeout": 5,
            "socket_timeout": 5,
            "health_check_interval": 30,
        }
        if parsed.scheme == "rediss":
            kwargs["ssl_cert_reqs"] = "required"
        return cls(redis.from_url(url, **kwargs))

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int, only_if_absent: bool = False) -> bool:
        return bool(self.client.set(key, value, ex=ttl_seconds, nx=only_if_absent))

    def incr(self, key: str, ttl_seconds: int) -> Tuple[int, int]:
        pipe = self.client.pipeline()
        pipe.incr(key)
        pipe.expire(key, ttl_seconds, nx=True)
        pipe.ttl(key)
        count, _, ttl = pipe.execute()
        return int(count), max(int(ttl), 0)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def ping(self) -> bool:
        return bool(self.client.ping())


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[Tuple[str, float]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._data[key]
            return None
        return entry

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ttl_seconds: int, only_if_absent: bool = False) -> bool:
        with self._lock:
            if only_if_absent and self._live(key) is not None:
                return False
            self._data[key] = (value, self._clock() + ttl_seconds)
            return True

    def incr(self, key: str, ttl_seconds: int) -> Tuple[int, int]:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                expires_at = self._clock() + ttl_seconds
                count = 1
            else:
                expires_at = entry[1]
                count = int(entry[0]) + 1
            self._data[key] = (str(count), expires_at)
            return count, max(int(expires_at - self._clock()), 0)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def ping(self) -> bool:
        return True


_store: Optional[KeyValueStore] = None


def get_kv_store() -> Optional[KeyValueStore]:
    """
    FastAPI dependency returning the configured store, or None when REDIS_URL is unset.
    """
    global _store
    if _store is None and settings.REDIS_URL:
        _store = RedisKeyValueStore.from_url(settings.REDIS_URL)
    return _store
