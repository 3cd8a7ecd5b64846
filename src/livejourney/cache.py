"""Expiring in-memory key-value store keyed by language."""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .config import SUPPORTED_LANGUAGES, check_language

logger = logging.getLogger(__name__)


class TTLCache:
    """Caches values per (key, language) for a fixed time-to-live."""

    def __init__(self, ttl: float, max_size: int = 256, clock: Callable[[], float] = time.time):
        """
        Initialize the cache.

        Args:
            ttl: Seconds an entry stays valid.
            max_size: Maximum number of entries; the oldest entry is evicted first.
            clock: Time source, replaceable in tests.
        """
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}  # localized key -> (value, stored_at)
        self._lock = threading.Lock()

    @staticmethod
    def _localized_key(key: str, language: str) -> str:
        return f"{key}_{check_language(language)}"

    def get(self, key: str, language: str = "en") -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        full_key = self._localized_key(key, language)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                return None
            value, stored_at = entry
            if now - stored_at >= self._ttl:
                del self._entries[full_key]
                return None
        logger.debug(f"Cache hit for {full_key}")
        return value

    def set(self, key: str, value: Any, language: str = "en") -> None:
        full_key = self._localized_key(key, language)
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            if full_key not in self._entries and len(self._entries) >= self._max_size:
                oldest_key = min(self._entries, key=lambda k: self._entries[k][1])
                del self._entries[oldest_key]
            self._entries[full_key] = (value, now)

    def get_or_load(self, key: str, loader: Callable[[], Any], language: str = "en") -> Any:
        """Return the cached value, calling ``loader`` and storing its result on a miss."""
        value = self.get(key, language)
        if value is None:
            value = loader()
            self.set(key, value, language)
        return value

    def _evict_expired(self, now: float) -> None:
        """Remove expired entries. Caller holds the lock."""
        expired_keys = [k for k, (_, stored_at) in self._entries.items() if now - stored_at >= self._ttl]
        for k in expired_keys:
            del self._entries[k]

        if expired_keys:
            logger.debug(f"Evicted {len(expired_keys)} expired cache entries")

    def clear(self, key: Optional[str] = None, language: str = "en") -> None:
        """Clear one entry, or everything when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(self._localized_key(key, language), None)

    def clear_all_languages(self, key: str) -> None:
        with self._lock:
            for language in SUPPORTED_LANGUAGES:
                self._entries.pop(self._localized_key(key, language), None)

    def __len__(self) -> int:
        return len(self._entries)
