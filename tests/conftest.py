"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from pensive.discovery.orchestrator import DiscoveryService
from pensive.rules.engine import RuleEngine
from pensive.search.ranking import RankingEngine
from pensive.store.memory import InMemoryTaxonomyStore
from pensive.store.protocols import TaxonomySnapshot
from tests.fixtures.taxonomy_fixtures import NOW, make_hp_store


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment settings out of test runs."""
    monkeypatch.delenv("PENSIVE_DATABASE", raising=False)
    monkeypatch.delenv("PENSIVE_CACHE_TTL", raising=False)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the directory holding fixture files."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def hp_store() -> InMemoryTaxonomyStore:
    return make_hp_store()


@pytest.fixture
def hp_snapshot(hp_store: InMemoryTaxonomyStore) -> TaxonomySnapshot:
    return hp_store.get("hp")


@pytest.fixture
def ranking() -> RankingEngine:
    """Ranking engine with a fixed clock."""
    return RankingEngine(clock=lambda: NOW)


@pytest.fixture
def discovery(hp_store: InMemoryTaxonomyStore, ranking: RankingEngine) -> DiscoveryService:
    return DiscoveryService(hp_store, RuleEngine(hp_store), ranking)
