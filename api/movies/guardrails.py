import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

DEFAULT_SWEEP_INTERVAL = 60.0


@dataclass
class RateLimitConfig:
    max_requests: int = 100
    window_seconds: float = 60


class SlidingWindowRateLimiter:
    """
    In-memory, per-process, per-IP sliding window rate limiter.
    One lock serializes admission checks and sweeps across all clients.
    """
    def __init__(self, cfg: RateLimitConfig, clock: Clock = time.monotonic):
        self.cfg = cfg
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def _prune(self, q: Deque[float], now: float) -> None:
        # timestamps arrive in order, so stale ones sit at the left
        while q and now - q[0] > self.cfg.window_seconds:
            q.popleft()

    def allow(self, key: str) -> bool:
        if self.cfg.window_seconds <= 0 or self.cfg.max_requests <= 0:
            return False

        with self._lock:
            now = self._clock()
            q = self._hits.get(key)
            if q is None:
                q = deque()
                self._hits[key] = q

            self._prune(q, now)

            if len(q) >= self.cfg.max_requests:
                return False

            q.append(now)
            return True

    def sweep(self) -> int:
        """Forget clients with no requests left inside the window."""
        with self._lock:
            now = self._clock()
            idle = []
            for key, q in self._hits.items():
                self._prune(q, now)
                if not q:
                    idle.append(key)
            for key in idle:
                del self._hits[key]

        if idle:
            logger.debug("Rate limiter sweep forgot %d idle client(s)", len(idle))
        return len(idle)

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._hits)

    def start_sweeper(self, interval_seconds: float) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return

        if interval_seconds <= 0:
            fallback = self.cfg.window_seconds if self.cfg.window_seconds > 0 else DEFAULT_SWEEP_INTERVAL
            logger.warning(
                "Sweep interval %s is not positive, sweeping every %ss instead", interval_seconds, fallback
            )
            interval_seconds = fallback

        self._stop = threading.Event()
        stop = self._stop

        def _run() -> None:
            while not stop.wait(interval_seconds):
                self.sweep()

        self._sweeper = threading.Thread(target=_run, name="rate-limit-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()


class TTLCache:
    """
    Simple in-memory TTL cache.

    Expiry is checked lazily on read: an entry whose deadline has passed reads
    as a miss but stays in the map until it is overwritten, deleted, cleared
    or dropped by purge_expired(). Reads never extend an entry's lifetime.
    """
    def __init__(self, default_ttl: float = 300, clock: Clock = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: Dict[Hashable, Tuple[float, Any]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Tuple[Optional[Any], bool]:
        with self._lock:
            item = self._store.get(key)
            now = self._clock()
        if item is None:
            return None, False
        expires_at, value = item
        if now >= expires_at:
            return None, False
        return value, True

    @property
    def generation(self) -> int:
        """Number of clear() calls so far."""
        with self._lock:
            return self._generation

    def set(
        self,
        key: Hashable,
        value: Any,
        ttl_seconds: Optional[float] = None,
        generation: Optional[int] = None,
    ) -> bool:
        """
        Store value under key. When generation is given and the cache has been
        cleared since it was read, the value is dropped and False is returned.
        """
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._store[key] = (self._clock() + ttl, value)
        return True

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._generation += 1

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, (expires_at, _) in self._store.items() if now >= expires_at]
            for k in expired:
                del self._store[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
