"""
Read-model cache for stock totals.
Uses Redis when REDIS_URL is configured, otherwise an in-memory TTL cache.
"""
from typing import Any, Dict, Optional, Tuple
import json
import logging
import threading
import time

logger = logging.getLogger(__name__)


class SimpleCache:
    """In-memory TTL cache, bounded to ``max_entries`` keys."""

    def __init__(self, max_entries: int = 10000):
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def _make_room(self, now: float):
        for key in [k for k, (expires, _) in self._entries.items() if expires <= now]:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            # Drop the entries closest to expiry
            for key in sorted(self._entries, key=lambda k: self._entries[k][0])[:100]:
                del self._entries[key]

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires, value = entry
            if expires <= time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int = 300):
        with self._lock:
            now = time.monotonic()
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._make_room(now)
            self._entries[key] = (now + ttl_seconds, value)

    def clear_prefix(self, prefix: str):
        """Drop every key starting with ``prefix``."""
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def clear(self):
        with self._lock:
            self._entries.clear()


# Global cache instance (in-memory)
cache = SimpleCache()


class RedisCacheClient:
    """Redis-backed cache with in-memory fallback."""

    def __init__(self):
        self._redis = None
        self._fallback = cache

    def initialize(self, redis_url: str | None = None):
        if redis_url:
            try:
                import redis
                self._redis = redis.from_url(
                    redis_url, socket_connect_timeout=2, decode_responses=True,
                )
                self._redis.ping()
                logger.info("Redis cache connected")
            except Exception as e:
                logger.warning(f"Redis unavailable, using memory cache: {e}")
                self._redis = None

    def get(self, key: str) -> Any | None:
        if self._redis:
            try:
                val = self._redis.get(key)
                return json.loads(val) if val else None
            except Exception as e:
                logger.warning(f"Redis get failed for {key}: {e}")
        return self._fallback.get(key)

    def set(self, key: str, value: Any, ttl_seconds: int = 300):
        if self._redis:
            try:
                self._redis.setex(key, ttl_seconds, json.dumps(value, default=str))
                return
            except Exception as e:
                logger.warning(f"Redis set failed for {key}: {e}")
        self._fallback.set(key, value, ttl_seconds)

    def invalidate_pattern(self, pattern: str):
        # Memory fallback may hold entries written while Redis was down
        if self._redis:
            try:
                cursor = 0
                while True:
                    cursor, keys = self._redis.scan(cursor, match=pattern, count=100)
                    if keys:
                        self._redis.delete(*keys)
                    if cursor == 0:
                        break
            except Exception as e:
                logger.warning(f"Redis invalidation failed for {pattern}: {e}")
        self._fallback.clear_prefix(pattern.replace("*", ""))


redis_cache = RedisCacheClient()
