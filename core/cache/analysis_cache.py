"""
Analysis Cache — TTL cache for expensive analysis results.

Keys are built from the analysis name, the alert id and every effective
parameter, so different windows or filters never collide. Expiry is
checked lazily on read; writes trigger an opportunistic sweep once the
sweep interval has elapsed, and a daemon thread can sweep periodically.
Values are returned as stored (same object, no copy). Last write wins;
there is no locking, so removals tolerate keys another thread already
dropped and sweeps iterate over a snapshot.

Time Complexity: O(1) for get/set, O(n) for sweep/invalidate
Memory: O(n) cached entries
"""

import hashlib
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from app.config import CACHE_SWEEP_SECONDS, CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class AnalysisCache:
    """In-process TTL cache shared by every analysis entry point."""

    def __init__(
        self,
        default_ttl: float = CACHE_TTL_SECONDS,
        sweep_interval: float = CACHE_SWEEP_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = float(default_ttl)
        self.sweep_interval = float(sweep_interval)
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float, Optional[str]]] = {}
        self._last_sweep = clock()
        self._hits = 0
        self._misses = 0
        self._sweeper: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @staticmethod
    def make_key(analysis: str, alert_id: Optional[str] = None, **params: Any) -> str:
        """Deterministic key over the analysis name, alert id and parameters."""
        payload = json.dumps(params, sort_keys=True, default=str)
        digest = hashlib.md5(payload.encode("utf-8")).hexdigest()[:12]
        return f"{analysis}:{alert_id or '*'}:{digest}"

    @staticmethod
    def _alert_of(key: str) -> Optional[str]:
        _, _, rest = key.partition(":")
        owner = rest.rpartition(":")[0]
        return owner if owner and owner != "*" else None

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        value, expires_at, _ = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            self._misses += 1
            return None
        self._hits += 1
        return value

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() >= entry[1]:
            self._entries.pop(key, None)
            return False
        return True

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        now = self._clock()
        expires_at = now + (self.default_ttl if ttl is None else float(ttl))
        self._entries[key] = (value, expires_at, self._alert_of(key))
        if now - self._last_sweep >= self.sweep_interval:
            self.cleanup()

    def invalidate(self, alert_id: str) -> int:
        """Drop every entry computed for this alert. Returns the number removed."""
        doomed = [k for k, (_, _, owner) in list(self._entries.items()) if owner == alert_id]
        removed = sum(1 for key in doomed if self._entries.pop(key, None) is not None)
        if removed:
            logger.info("Invalidated %d cache entries for alert %s", removed, alert_id)
        return removed

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def cleanup(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        expired = [
            k for k, (_, expires_at, _) in list(self._entries.items()) if now >= expires_at
        ]
        removed = sum(1 for key in expired if self._entries.pop(key, None) is not None)
        self._last_sweep = now
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)
        return removed

    def stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 4) if total else 0.0,
            "default_ttl_seconds": self.default_ttl,
        }

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Any],
        ttl: Optional[float] = None,
        cacheable: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """Return the cached value, or compute, store and return it.

        Results that signal insufficient data (None) are not cached, nor
        results the optional `cacheable` predicate rejects.
        """
        value = self.get(key)
        if value is not None:
            logger.debug("Cache hit: %s", key)
            return value
        logger.debug("Cache miss: %s", key)
        value = compute()
        if value is None:
            return value
        if cacheable is not None and not cacheable(value):
            logger.debug("Not caching degraded result: %s", key)
            return value
        self.set(key, value, ttl)
        return value

    def start_periodic_cleanup(self) -> threading.Thread:
        """Start the daemon sweeper (idempotent)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return self._sweeper
        self._stop.clear()

        def _run():
            while not self._stop.wait(self.sweep_interval):
                try:
                    self.cleanup()
                except Exception:
                    logger.exception("Periodic cache sweep failed")

        self._sweeper = threading.Thread(target=_run, name="analysis-cache-sweeper", daemon=True)
        self._sweeper.start()
        return self._sweeper

    def stop_periodic_cleanup(self) -> None:
        self._stop.set()
