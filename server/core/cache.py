"""In-process TTL cache with FIFO capacity eviction.

Two instances are built at startup (see ``core.container``): one for full CSV
content and one for metadata records, each with its own default lifetime.
Entries expire lazily on read or in bulk through ``prune()``.
"""

import inspect
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Generic, Optional, Tuple, TypeVar, Union

from core.logging import get_logger, log_cache_operation

logger = get_logger(__name__)

T = TypeVar("T")

# (value, expires_at) where expires_at is on the cache clock
_Entry = Tuple[Any, float]


class TTLCache(Generic[T]):
    """Time-bound key/value store.

    Eviction is insertion ordered: when a new key is added at capacity the
    earliest inserted key is dropped, regardless of how recently it was read.
    Overwriting an existing key keeps its position and never evicts.
    """

    def __init__(
        self,
        default_ttl: float = 300,
        max_entries: int = 100,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            default_ttl: Lifetime in seconds applied when ``set`` gets no ttl
            max_entries: Capacity bound, must be at least 1
            name: Label used in log lines
            clock: Monotonic time source, injectable for tests
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.name = name
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()

    def _expired(self, expires_at: float) -> bool:
        return self._clock() > expires_at

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            log_cache_operation(logger, "get", key, hit=False, cache=self.name)
            return None

        value, expires_at = entry
        if self._expired(expires_at):
            del self._entries[key]
            log_cache_operation(logger, "get", key, hit=False, cache=self.name, expired=True)
            return None

        log_cache_operation(logger, "get", key, hit=True, cache=self.name)
        return value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        """Store a value, evicting the oldest entry if a new key hits capacity."""
        if key not in self._entries and len(self._entries) >= self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            log_cache_operation(logger, "evict", evicted_key, cache=self.name)

        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = (value, self._clock() + ttl)
        log_cache_operation(logger, "set", key, ttl=ttl, cache=self.name)

    def has(self, key: str) -> bool:
        """Check if a key exists and is not expired."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._expired(entry[1]):
            del self._entries[key]
            return False
        return True

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def delete(self, key: str) -> bool:
        """Delete a key. Returns False if it was not present."""
        deleted = self._entries.pop(key, None) is not None
        log_cache_operation(logger, "delete", key, deleted=deleted, cache=self.name)
        return deleted

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def size(self) -> int:
        """Number of stored entries, expired ones included until pruned."""
        return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def prune(self) -> int:
        """Remove all expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if now > expires_at]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug("Pruned expired cache entries", cache=self.name, removed=len(expired))
        return len(expired)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Union[T, Awaitable[T]]],
        ttl: Optional[float] = None,
    ) -> T:
        """Return the cached value or build, store and return a fresh one.

        The factory runs once per miss. Concurrent misses for the same key are
        not coalesced and may each invoke it.
        """
        # has() rather than get() so a cached None still counts as a hit
        if self.has(key):
            return self._entries[key][0]

        value = factory()
        if inspect.isawaitable(value):
            value = await value
        self.set(key, value, ttl)
        return value
