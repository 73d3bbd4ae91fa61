"""
Time-bounded memoization of external-store lookups.

Entries (including "not found") live for `timeout` seconds. Expired entries
are dropped on access and by an optional background sweep, and are never
returned.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional

from .logger import get_logger
from .models import SiteAssignment

logger = get_logger()

FetchFn = Callable[[str], Optional[SiteAssignment]]


@dataclass(frozen=True)
class CacheEntry:
    """Cached outcome; `assignment` None marks a cached "not found"."""
    assignment: Optional[SiteAssignment]
    inserted_at: float


class ResultCache:
    def __init__(
        self,
        timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self.hits = 0
        self.misses = 0

        self._sweeper: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at < self.timeout

    def _lookup(self, key: str):
        """Return (hit, assignment); deletes the entry when expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            if self._is_fresh(entry, self._clock()):
                self.hits += 1
                return True, entry.assignment
            del self._entries[key]
            return False, None

    def _key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def put(self, key: str, assignment: Optional[SiteAssignment]) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(assignment, self._clock())

    def get_or_fetch(self, key: str, fetch_fn: FetchFn) -> Optional[SiteAssignment]:
        """
        Return the cached outcome for `key`, or call `fetch_fn(key)` and cache it.

        Concurrent misses for the same key issue a single fetch. If
        `fetch_fn` raises, nothing is cached and the error propagates.
        """
        hit, assignment = self._lookup(key)
        if hit:
            logger.debug("Cache hit", key=key)
            return assignment

        key_lock = self._key_lock(key)
        with key_lock:
            # Another thread may have filled it while we waited
            hit, assignment = self._lookup(key)
            if hit:
                return assignment

            with self._lock:
                self.misses += 1
            try:
                assignment = fetch_fn(key)
                self.put(key, assignment)
                return assignment
            finally:
                with self._lock:
                    if self._key_locks.get(key) is key_lock:
                        del self._key_locks[key]

    def warm(
        self,
        keys: Iterable[str],
        fetch_many: Callable[[list], Mapping[str, SiteAssignment]],
    ) -> int:
        """
        Prefetch many keys with one batched call.

        Keys absent from the batch result are cached as "not found".
        Returns the number of entries written.
        """
        keys = [k for k in dict.fromkeys(keys) if k]
        if not keys:
            return 0
        found = fetch_many(keys)
        for key in keys:
            self.put(key, found.get(key))
        return len(keys)

    def sweep(self) -> int:
        """Remove every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Cache sweep removed {len(expired)} entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "timeout": self.timeout,
            }

    # Background sweep

    def start_sweeper(self, interval: Optional[float] = None) -> None:
        """Run sweep() every `interval` seconds (default: the cache timeout)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        interval = interval or self.timeout
        self._stop.clear()

        def run():
            while not self._stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=run, name="cache-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
