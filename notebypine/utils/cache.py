"""
In-memory TTL cache.

Used for PocketBase query results (queries.py) and for MCP read-tool
responses (mcp_server.py). Entries expire lazily on read and are swept on
every write.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class TTLCache:
    """
    String-keyed cache with per-entry time-to-live.

    Args:
        default_ttl: TTL in seconds used when set() is called without one.
        clock: Time source (seconds); injectable for tests.
    """

    def __init__(self, default_ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.expired(self._clock())

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            data=data,
            timestamp=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self._cleanup()

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.data

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drop entries whose key contains pattern, or everything.

        Returns:
            Number of entries removed.
        """
        if not pattern:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        doomed = [key for key in self._entries if pattern in key]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def _cleanup(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]

    def stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
        }
