"""Short-lived, fandom-keyed cache in front of a TaxonomyAccessor."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING

from pensive.observability.logging import get_logger

if TYPE_CHECKING:
    from pensive.store.protocols import TaxonomyAccessor, TaxonomySnapshot

log = get_logger(__name__)


@dataclass
class _CacheEntry:
    snapshot: TaxonomySnapshot
    expires_at: float


class CachedTaxonomyAccessor:
    """Caches snapshots per ``(fandom_id, active_only)`` for ``ttl_seconds``.

    A TTL of zero disables caching. :meth:`invalidate` drops every entry of
    a fandom and is meant to be registered as a write listener on the store.
    """

    def __init__(
        self,
        inner: TaxonomyAccessor,
        ttl_seconds: float = 30.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            msg = f"ttl_seconds must be >= 0, got {ttl_seconds}"
            raise ValueError(msg)
        self._inner = inner
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, bool], _CacheEntry] = {}
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def get(self, fandom_id: str, active_only: bool = True) -> TaxonomySnapshot:
        if self._ttl == 0:
            return self._inner.get(fandom_id, active_only)

        key = (fandom_id, active_only)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at > now:
                self.hits += 1
                return entry.snapshot

        snapshot = self._inner.get(fandom_id, active_only)
        with self._lock:
            self.misses += 1
            self._entries[key] = _CacheEntry(snapshot, now + self._ttl)
        log.debug("taxonomy_cache_miss", fandom_id=fandom_id, active_only=active_only)
        return snapshot

    def invalidate(self, fandom_id: str) -> None:
        """Drop cached snapshots of one fandom."""
        with self._lock:
            for key in [k for k in self._entries if k[0] == fandom_id]:
                del self._entries[key]
        log.debug("taxonomy_cache_invalidated", fandom_id=fandom_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
