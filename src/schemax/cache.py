"""Get-or-compute caches for compiled artifacts.

Completed entries live in an LRU ordered map with a time-based expiry.
Computations in flight are tracked as futures keyed by cache key: the first
caller for a key computes, later callers for the same key wait on that
future, and callers for other keys are never blocked by it. The internal
lock only guards dictionary bookkeeping and is never held while computing.
"""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from typing import Any, NamedTuple

from schemax.errors import CacheComputeError

logger = logging.getLogger(__name__)


class RuleCacheKey(NamedTuple):
    """Key of a custom compiled rule-set."""
    rule_set_type: str
    profile_name: str
    fingerprint: str


class OverrideCacheKey(NamedTuple):
    """Key of an override compiled schema."""
    schema_type: str
    overrides: tuple[str, ...]


class _Entry(NamedTuple):
    value: Any
    expires_at: float


class ComputeCache:
    """Bounded, expiring cache with at-most-one computation per key."""

    def __init__(
        self,
        name: str,
        max_size: int = 50,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.name = name
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[Hashable, _Entry] = OrderedDict()
        self._pending: dict[Hashable, Future] = {}
        self._generation = 0
        self.hits = 0
        self.misses = 0
        self.computations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.peek(key) is not None

    def peek(self, key: Hashable) -> Any | None:
        """Return a live entry without computing or touching LRU order."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at <= self._clock():
                return None
            return entry.value

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, computing it once on a miss.

        Raises:
            CacheComputeError: If the computation failed; nothing is cached
                and the next lookup computes again
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.expires_at > self._clock():
                    self._entries.move_to_end(key)
                    self.hits += 1
                    logger.debug(f"{self.name} cache hit: {key}")
                    return entry.value
                del self._entries[key]

            future = self._pending.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._pending[key] = future
                generation = self._generation
                self.misses += 1
                self.computations += 1

        if not owner:
            logger.debug(f"{self.name} cache waiting for in-flight computation: {key}")
            return future.result()

        try:
            value = compute()
        except CacheComputeError as e:
            self._release(key, future)
            future.set_exception(e)
            raise
        except Exception as e:
            error = CacheComputeError(key, e)
            self._release(key, future)
            future.set_exception(error)
            raise error from e
        except BaseException:
            # interrupted; waiters must not hang on the future
            self._release(key, future)
            future.set_exception(CacheComputeError(key, RuntimeError("computation interrupted")))
            raise

        with self._lock:
            if self._pending.get(key) is future:
                del self._pending[key]
            if generation == self._generation:
                self._entries[key] = _Entry(value, self._clock() + self.ttl_seconds)
                self._entries.move_to_end(key)
                while len(self._entries) > self.max_size:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug(f"{self.name} cache evicted: {evicted}")
            else:
                logger.debug(f"{self.name} cache dropped result computed before invalidation: {key}")
        future.set_result(value)
        return value

    def _release(self, key: Hashable, future: Future) -> None:
        with self._lock:
            if self._pending.get(key) is future:
                del self._pending[key]

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_all(self) -> None:
        """Drop every entry; computations still in flight are not stored."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._pending = {}
            self._generation += 1
        logger.info(f"{self.name} cache invalidated ({count} entries)")

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "computations": self.computations,
                "pending": len(self._pending),
            }
