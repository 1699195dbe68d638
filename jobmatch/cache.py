"""
Content-version-aware cache for match scores and résumé analysis.

An entry is only served when it is younger than the TTL *and* was computed
against the same content version the caller currently sees. A version
mismatch is a plain miss, never an error.

One instance is created per process and injected into the engine and the
analyzer. It lives in process memory; several processes each keep their own
copy, so a multi-instance deployment needs an external store behind this same
interface.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from .logger import get_logger

logger = get_logger()

DEFAULT_TTL = timedelta(hours=1)


def match_key(candidate_id: str, job_id: str) -> Tuple[str, str, str]:
    return ("match", candidate_id, job_id)


def analysis_key(candidate_id: str) -> Tuple[str, str]:
    return ("analysis", candidate_id)


@dataclass(frozen=True)
class CacheEntry:
    key: Hashable
    value: Any
    version: Any
    stored_at: datetime


class AnalysisCache:
    """Thread-safe TTL cache keyed by (key, content version)."""

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            ttl: Maximum age of a servable entry
            clock: Returns the current time; injectable for tests
        """
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, current_version: Any) -> Optional[Any]:
        """Return the cached value, or None on miss, expiry or version change."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            if entry.version != current_version:
                del self._entries[key]
                self.misses += 1
                logger.debug("Cache entry dropped: content version changed", key=key)
                return None

            age = self._clock() - entry.stored_at
            if age >= self.ttl:
                del self._entries[key]
                self.misses += 1
                logger.debug("Cache entry expired", key=key, age_seconds=int(age.total_seconds()))
                return None

            self.hits += 1
            return entry.value

    def set(self, key: Hashable, value: Any, version: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key, value, version, self._clock())

    def invalidate(self, key: Hashable) -> bool:
        """Remove one entry. Returns True if something was removed."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug("Cache entry invalidated", key=key)
        return removed

    def invalidate_owner(self, owner_id: str) -> int:
        """
        Remove every entry computed for one candidate (analysis and all of
        its match scores). Call when the owner's résumé changes.
        """
        with self._lock:
            doomed = [
                k for k in self._entries
                if isinstance(k, tuple) and len(k) > 1 and k[1] == owner_id
            ]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.info(f"Invalidated {len(doomed)} cache entries", owner_id=owner_id)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries
