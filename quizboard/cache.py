"""Short-lived cache for read-heavy aggregate responses.

Values may be up to ``ttl`` seconds stale; endpoints that use the cache say
so with a ``Cache-Control: max-age`` header.
"""
import logging
import threading

from cachetools import TTLCache

logger = logging.getLogger(__name__)

_MISSING = object()


def cache_key(request) -> str:
    """Path plus query string of ``request``."""
    return request.full_path.rstrip("?")


class ResponseCache:
    def __init__(self, ttl: int = 300, maxsize: int = 500):
        self.ttl = ttl
        self._entries = TTLCache(maxsize=maxsize, ttl=ttl)
        # TTLCache is not thread safe; held only around dict access
        self._lock = threading.Lock()

    def get(self, key, default=None):
        with self._lock:
            return self._entries.get(key, default)

    def set(self, key, value):
        with self._lock:
            self._entries[key] = value

    def get_or_compute(self, key, compute, fallback=None, errors=(Exception,)):
        """Cached value for ``key``, computing it on a miss.

        When ``compute`` raises one of ``errors`` the fallback is returned
        (and not cached) so callers see a degraded but valid payload.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        try:
            value = compute()
        except errors:
            logger.warning("serving fallback payload for %s (degraded)", key, exc_info=True)
            return fallback
        self.set(key, value)
        return value

    def header(self, private: bool = False) -> str:
        """Cache-Control value advertising how stale a cached body may be."""
        scope = "private" if private else "public"
        return f"{scope}, max-age={self.ttl}"

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)
