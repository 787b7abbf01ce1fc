"""Tests for the in-memory store and the snapshot cache."""

from __future__ import annotations

import pytest

from pensive.models import Tag
from pensive.store.cache import CachedTaxonomyAccessor
from pensive.store.memory import InMemoryTaxonomyStore
from pensive.store.protocols import RuleStore, TaxonomyAccessor


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryTaxonomyStore:
    """Tests for InMemoryTaxonomyStore."""

    def test_satisfies_read_contracts(self, hp_store: InMemoryTaxonomyStore) -> None:
        """The store is both a taxonomy accessor and a rule store."""
        assert isinstance(hp_store, TaxonomyAccessor)
        assert isinstance(hp_store, RuleStore)

    def test_snapshot_is_fandom_scoped(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Only the requested fandom's records are returned."""
        snapshot = hp_store.get("lotr")
        assert [t.id for t in snapshot.tags] == ["t-ring"]
        assert [s.id for s in snapshot.stories] == ["s-ring"]

    def test_active_only(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Inactive records are hidden unless asked for."""
        assert "t-old" not in hp_store.get("hp").tags_by_id
        assert "t-old" in hp_store.get("hp", active_only=False).tags_by_id

    def test_inactive_fandom_record_still_returned(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Callers can tell an inactive fandom from a missing one."""
        fandom = hp_store.get("retired").fandom
        assert fandom is not None
        assert fandom.is_active is False
        assert hp_store.get("missing").fandom is None

    def test_deactivate(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Deactivated records drop out of active reads."""
        hp_store.deactivate("rule", "r-tt-romance")
        assert hp_store.list_active_rules("hp") == []
        with pytest.raises(KeyError):
            hp_store.deactivate("tag", "missing")
        with pytest.raises(ValueError, match="Unknown record kind"):
            hp_store.deactivate("widget", "t-tt")

    def test_listeners_get_fandom_id(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Writes notify listeners with the owning fandom."""
        seen: list[str] = []
        hp_store.add_listener(seen.append)
        hp_store.add_tag(Tag(id="t-new", fandom_id="lotr", name="new"))
        hp_store.deactivate("tag", "t-tt")
        assert seen == ["lotr", "hp"]


class TestCachedTaxonomyAccessor:
    """Tests for the TTL cache."""

    def test_hits_within_ttl(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Repeated reads within the TTL return the cached snapshot."""
        clock = FakeClock()
        cache = CachedTaxonomyAccessor(hp_store, ttl_seconds=10, clock=clock)
        first = cache.get("hp")
        clock.now = 9.9
        assert cache.get("hp") is first
        assert (cache.hits, cache.misses) == (1, 1)

    def test_expires_after_ttl(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Entries expire once the TTL has passed."""
        clock = FakeClock()
        cache = CachedTaxonomyAccessor(hp_store, ttl_seconds=10, clock=clock)
        first = cache.get("hp")
        clock.now = 10.0
        assert cache.get("hp") is not first
        assert cache.misses == 2

    def test_keys_include_active_flag(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Active-only and full snapshots are cached separately."""
        cache = CachedTaxonomyAccessor(hp_store, ttl_seconds=10, clock=FakeClock())
        assert "t-old" not in cache.get("hp").tags_by_id
        assert "t-old" in cache.get("hp", active_only=False).tags_by_id

    def test_write_invalidates(self, hp_store: InMemoryTaxonomyStore) -> None:
        """A write to the fandom drops its cached snapshots only."""
        cache = CachedTaxonomyAccessor(hp_store, ttl_seconds=60, clock=FakeClock())
        hp_store.add_listener(cache.invalidate)
        cache.get("hp")
        lotr = cache.get("lotr")
        hp_store.add_tag(Tag(id="t-new", fandom_id="hp", name="new-tag"))
        assert "t-new" in cache.get("hp").tags_by_id
        assert cache.get("lotr") is lotr

    def test_zero_ttl_disables(self, hp_store: InMemoryTaxonomyStore) -> None:
        """A zero TTL reads through every time."""
        cache = CachedTaxonomyAccessor(hp_store, ttl_seconds=0)
        assert cache.get("hp") is not cache.get("hp")
        assert cache.hits == 0

    def test_clear(self, hp_store: InMemoryTaxonomyStore) -> None:
        """clear drops every entry."""
        cache = CachedTaxonomyAccessor(hp_store, ttl_seconds=60, clock=FakeClock())
        first = cache.get("hp")
        cache.clear()
        assert cache.get("hp") is not first

    def test_negative_ttl_rejected(self, hp_store: InMemoryTaxonomyStore) -> None:
        """Negative TTLs are a programming error."""
        with pytest.raises(ValueError, match="ttl_seconds"):
            CachedTaxonomyAccessor(hp_store, ttl_seconds=-1)
