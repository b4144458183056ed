import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

import config

logger = logging.getLogger(__name__)


class ProductQueryCache:
    """
    Process-local memo for product list queries.

    Entries live for `ttl` seconds. When full, the oldest inserted key is
    evicted. Writes to products never invalidate it, so a listing can be up
    to `ttl` seconds stale. Sync routes run in the threadpool, so every
    access holds the lock.
    """

    def __init__(self, ttl: float = config.PRODUCT_CACHE_TTL,
                 max_entries: int = config.PRODUCT_CACHE_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # dicts keep insertion order, which gives oldest-first eviction
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl:
                self._entries.pop(key, None)
                return None
        logger.debug("Product cache hit: %s", key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                oldest = next(iter(self._entries))
                self._entries.pop(oldest, None)
                logger.debug("Product cache evicted: %s", oldest)
            self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


product_cache = ProductQueryCache()
