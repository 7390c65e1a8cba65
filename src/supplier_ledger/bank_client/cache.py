"""
Transaction cache with TTL and single-flight fetching.

Rules:
- Only non-empty results are cached; an empty upstream answer must never
  hide data from the next caller
- An entry expires when now - fetched_at > ttl
- Concurrent callers missing the same key share one upstream fetch
"""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheEntry:
    """Cached transactions for one key."""

    transactions: tuple
    fetched_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now - self.fetched_at > self.ttl_seconds


@dataclass(frozen=True)
class CacheStats:
    """Cache counters."""

    keys: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> dict:
        return {
            "keys": self.keys,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
        }


class TransactionCache:
    """
    In-memory TTL cache for transaction lists.

    Thread-safe for synchronous usage.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Time-to-live of each entry
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> tuple | None:
        """Return cached transactions, or None on miss/expiry (expired entries are dropped)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug("Cache EXPIRED: %s", key)
                entry = None

            if entry is None:
                self._misses += 1
                logger.debug("Cache MISS: %s", key)
                return None

            self._hits += 1
            logger.debug("Cache HIT: %s", key)
            return entry.transactions

    def set(self, key: str, transactions: Sequence) -> bool:
        """
        Store transactions under a key.

        Returns:
            False (and stores nothing) when the sequence is empty
        """
        if not transactions:
            logger.debug("Not caching empty result for %s", key)
            return False

        with self._lock:
            self._entries[key] = CacheEntry(
                transactions=tuple(transactions),
                fetched_at=self._clock(),
                ttl_seconds=self.ttl_seconds,
            )
        return True

    def clear(self) -> None:
        """Flush every entry."""
        with self._lock:
            self._entries.clear()
        logger.info("Transaction cache cleared")

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(keys=len(self._entries), hits=self._hits, misses=self._misses)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not entry.is_expired(self._clock())


class _Call:
    """One in-flight computation shared by a leader and its followers."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Any = None
        self.error: BaseException | None = None
        self.followers = 0


class InFlightRegistry:
    """
    Per-key single-flight execution.

    The first caller for a key (the leader) runs the function; callers
    arriving while it runs wait for it and receive the same result, or the
    same exception.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[str, _Call] = {}

    def run(self, key: str, fn: Callable[[], Any]) -> Any:
        with self._lock:
            call = self._calls.get(key)
            is_leader = call is None
            if call is None:
                call = _Call()
                self._calls[key] = call
            else:
                call.followers += 1

        if not is_leader:
            logger.debug("Joining in-flight fetch for %s", key)
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result

        try:
            call.result = fn()
        except Exception as e:
            call.error = e
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()

        return call.result

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._calls

    def followers(self, key: str) -> int:
        """Number of callers currently waiting on the key's leader."""
        with self._lock:
            call = self._calls.get(key)
            return call.followers if call else 0
