"""Time-based cache for built indexes."""

import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CacheEntry(Generic[V]):
    """A cached value with its creation time and expiry."""

    value: V
    fingerprint: str
    created_at: float
    expires_at: float


@dataclass
class CacheStats:
    """Snapshot of cache contents."""

    size: int
    keys: list[str]


class TTLCache(Generic[V]):
    """Key -> value cache whose entries expire a fixed time after creation.

    Expired entries are dropped lazily on lookup. Time comes from an
    injectable clock so tests can move it forward.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get_entry(self, key: str) -> CacheEntry[V] | None:
        """Get a live entry, evicting it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> V | None:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: V, fingerprint: str = "") -> CacheEntry[V]:
        now = self._clock()
        entry = CacheEntry(
            value=value,
            fingerprint=fingerprint,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._entries[key] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), keys=list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get_entry(key) is not None
