"""
Global search plumbing: minimum length gate, short-lived result cache
and in-view card filtering. Keystroke debouncing happens in the page
script, using SEARCH_DEBOUNCE_SECONDS.
"""

import threading
import time
from typing import Callable, Iterable, Optional

import queries

MIN_QUERY_LENGTH = 3
SEARCH_STALE_SECONDS = 30
SEARCH_DEBOUNCE_SECONDS = 0.3
SEARCH_CACHE_MAX_ENTRIES = 200

EMPTY_RESULTS = {"sections": [], "folders": [], "cards": []}


class GlobalSearch:
    """search_all with a per-query cache that goes stale after ttl seconds."""

    def __init__(self, sb, ttl: float = SEARCH_STALE_SECONDS, clock: Callable[[], float] = time.monotonic,
                 max_entries: int = SEARCH_CACHE_MAX_ENTRIES):
        self._sb = sb
        self._ttl = ttl
        self._clock = clock
        self._max_entries = max_entries
        self._cache = {}
        self._lock = threading.Lock()

    def search(self, query: str) -> dict:
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return {k: [] for k in EMPTY_RESULTS}

        key = query.lower()
        now = self._clock()
        with self._lock:
            hit = self._cache.get(key)
            if hit and now - hit[0] < self._ttl:
                return hit[1]

        results = queries.search_all(self._sb, query)
        with self._lock:
            self._store(key, now, results)
        return results

    def _store(self, key, now, results):
        # Caller holds the lock
        for k in [k for k, (ts, _) in self._cache.items() if now - ts >= self._ttl]:
            del self._cache[k]
        while self._cache and len(self._cache) >= self._max_entries:
            oldest = min(self._cache, key=lambda k: self._cache[k][0])
            del self._cache[oldest]
        self._cache[key] = (now, results)

    def invalidate(self):
        """Forget cached results; call after any mutation."""
        with self._lock:
            self._cache.clear()


def filter_cards(cards: Iterable[dict], query: str = "", favorite_ids: Optional[Iterable] = None) -> list:
    """Filter cards already on screen by text and, optionally, to favorites only."""
    result = list(cards)
    q = (query or "").strip().lower()
    if q:
        result = [
            c for c in result
            if q in (c.get("title") or "").lower()
            or q in (c.get("description") or "").lower()
            or any(q in str(t).lower() for t in (c.get("tags") or []))
        ]
    if favorite_ids is not None:
        favs = set(favorite_ids)
        result = [c for c in result if (c.get("card_id") or c.get("id")) in favs]
    return result
