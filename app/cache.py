"""
Simple in-memory LRU cache for resolved Business Profile locations.
Cache key: connection_id + place_id
Cache value: LocationHandle + timestamp
TTL: LOCATION_CACHE_TTL_SECONDS (10 minutes by default)
"""
import threading
import time
from collections import OrderedDict
from typing import Dict, Optional, Tuple

from .review_models import LocationHandle
from .settings import settings


class LRUCache:
    """Simple LRU cache with TTL."""

    def __init__(self, max_size: int = 1000, ttl_seconds: int = 600):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.cache: "OrderedDict[str, Tuple[LocationHandle, float]]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _key(connection_id: str, place_id: str) -> str:
        return f"{connection_id}:{place_id}"

    def _is_expired(self, timestamp: float) -> bool:
        return time.time() - timestamp > self.ttl_seconds

    def _cleanup_expired(self):
        now = time.time()
        expired_keys = [
            key for key, (_, ts) in self.cache.items()
            if now - ts > self.ttl_seconds
        ]
        for key in expired_keys:
            self.cache.pop(key, None)

    def get(self, connection_id: str, place_id: str) -> Optional[LocationHandle]:
        """Returns None if not found or expired."""
        key = self._key(connection_id, place_id)
        with self._lock:
            self._cleanup_expired()
            if key in self.cache:
                handle, timestamp = self.cache[key]
                if not self._is_expired(timestamp):
                    # Move to end (most recently used)
                    self.cache.move_to_end(key)
                    return handle
        return None

    def put(self, connection_id: str, place_id: str, handle: LocationHandle):
        """Evicts oldest entry if cache is full."""
        key = self._key(connection_id, place_id)
        with self._lock:
            self._cleanup_expired()
            self.cache.pop(key, None)
            if len(self.cache) >= self.max_size:
                self.cache.popitem(last=False)
            self.cache[key] = (handle, time.time())

    def invalidate(self, connection_id: str, place_id: str):
        with self._lock:
            self.cache.pop(self._key(connection_id, place_id), None)

    def clear(self):
        with self._lock:
            self.cache.clear()

    def stats(self) -> Dict:
        with self._lock:
            self._cleanup_expired()
            return {
                "size": len(self.cache),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
            }


# Global cache instance
_location_cache = LRUCache(max_size=1000, ttl_seconds=settings.LOCATION_CACHE_TTL_SECONDS)


def get_cached_location(connection_id: str, place_id: str) -> Optional[LocationHandle]:
    return _location_cache.get(connection_id, place_id)


def cache_location(connection_id: str, place_id: str, handle: LocationHandle):
    _location_cache.put(connection_id, place_id, handle)


def forget_location(connection_id: str, place_id: str):
    _location_cache.invalidate(connection_id, place_id)


def clear_location_cache():
    _location_cache.clear()


def get_cache_stats() -> Dict:
    return _location_cache.stats()
