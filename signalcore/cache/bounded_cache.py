"""Bounded TTL cache with approximate-LRU eviction and a periodic sweep.

Entries expire lazily on ``get``/``has`` and proactively on ``sweep``.
When full, the entry with the fewest reads is evicted first; ties go to
the oldest insertion.  Every method is safe to call from several threads.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, Optional

logger = logging.getLogger("signalcore.cache")


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    expires_at: float
    access_count: int = 0


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    cleanups: int
    total_sets: int

    @property
    def hit_rate(self) -> float:
        """Hits as a percentage of all lookups."""
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups * 100.0

    @property
    def utilization(self) -> float:
        return self.size / self.max_size * 100.0

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "cleanups": self.cleanups,
            "total_sets": self.total_sets,
            "hit_rate": round(self.hit_rate, 2),
            "utilization": round(self.utilization, 1),
        }


@dataclass(frozen=True)
class SweepReport:
    expired: int
    remaining: int


class BoundedCache:
    """Key → value store bounded by size and per-entry TTL.

    Args:
        max_size: Maximum number of entries held at once.
        default_ttl: Lifetime in seconds for entries set without a TTL.
        sweep_interval: Seconds between background sweeps once
            :meth:`start_sweeper` is called.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: float = 900.0,
        sweep_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._entries: dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._cleanups = 0
        self._total_sets = 0

        self._stop_event: Optional[threading.Event] = None
        self._sweeper: Optional[threading.Thread] = None

    # ── Basic operations ─────────────────────────────────────────────────

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> bool:
        """Store *value* under *key*, evicting one entry if the cache is full."""
        lifetime = ttl if ttl is not None else self._default_ttl
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self._max_size:
                self._evict_one()
            self._entries[key] = CacheEntry(
                value=value,
                created_at=now,
                expires_at=now + lifetime,
            )
            self._total_sets += 1
        return True

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or *default* when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if self._clock() > entry.expires_at:
                del self._entries[key]
                self._misses += 1
                return default
            entry.access_count += 1
            self._hits += 1
            return entry.value

    def has(self, key: Hashable) -> bool:
        """Freshness check that leaves access counts and hit/miss stats alone."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._clock() > entry.expires_at:
                del self._entries[key]
                return False
            return True

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Remove every entry.  Returns how many were removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ── Bulk and TTL helpers ─────────────────────────────────────────────

    def mget(self, keys: Iterable[Hashable]) -> dict:
        return {key: self.get(key) for key in keys}

    def mset(self, entries: Iterable[tuple]) -> list[bool]:
        """Set many entries given as ``(key, value)`` or ``(key, value, ttl)``."""
        results = []
        for item in entries:
            key, value, *rest = item
            results.append(self.set(key, value, rest[0] if rest else None))
        return results

    def update_ttl(self, key: Hashable, ttl: float) -> bool:
        """Give an existing entry a new lifetime counted from now."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            entry.expires_at = self._clock() + ttl
            return True

    def get_remaining_ttl(self, key: Hashable) -> Optional[float]:
        """Seconds until *key* expires; ``None`` if absent, ``0.0`` if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return max(0.0, entry.expires_at - self._clock())

    def key_info(self) -> list[dict]:
        """Per-key age, remaining TTL and reads, most-read first."""
        with self._lock:
            now = self._clock()
            info = [
                {
                    "key": key,
                    "age_seconds": now - entry.created_at,
                    "ttl_seconds": max(0.0, entry.expires_at - now),
                    "access_count": entry.access_count,
                    "expired": now > entry.expires_at,
                }
                for key, entry in self._entries.items()
            ]
        return sorted(info, key=lambda i: i["access_count"], reverse=True)

    # ── Maintenance ──────────────────────────────────────────────────────

    def sweep(self) -> SweepReport:
        """Drop every expired entry in a single pass."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for key in expired:
                del self._entries[key]
            self._cleanups += 1
            remaining = len(self._entries)
        if expired:
            logger.debug("Cache sweep removed %d expired entries.", len(expired))
        return SweepReport(expired=len(expired), remaining=remaining)

    def resize(
        self,
        max_size: Optional[int] = None,
        default_ttl: Optional[float] = None,
    ) -> None:
        """Apply new limits, evicting down to *max_size* if it shrank."""
        with self._lock:
            if max_size is not None:
                if max_size < 1:
                    raise ValueError(f"max_size must be >= 1, got {max_size}")
                self._max_size = max_size
                while len(self._entries) > self._max_size:
                    self._evict_one()
            if default_ttl is not None:
                if default_ttl <= 0:
                    raise ValueError(
                        f"default_ttl must be positive, got {default_ttl}"
                    )
                self._default_ttl = default_ttl

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                max_size=self._max_size,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                cleanups=self._cleanups,
                total_sets=self._total_sets,
            )

    # ── Background sweeper ───────────────────────────────────────────────

    def start_sweeper(self) -> None:
        """Run :meth:`sweep` every ``sweep_interval`` seconds on a daemon thread."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event = threading.Event()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(self._stop_event,),
            name="cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()
        logger.info("Cache sweeper started (interval=%.0fs).", self._sweep_interval)

    def stop_sweeper(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5.0)
        self._sweeper = None
        self._stop_event = None

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception as exc:
                logger.error("Cache sweep failed: %s", exc)

    # ── Internal ─────────────────────────────────────────────────────────

    def _evict_one(self) -> None:
        """Evict the least-read entry.  Caller must hold the lock."""
        if not self._entries:
            return
        # min() keeps the first of equal counts → oldest insertion wins ties
        victim = min(self._entries, key=lambda k: self._entries[k].access_count)
        del self._entries[victim]
        self._evictions += 1
