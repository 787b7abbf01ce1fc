"""Composition root: build the engine's service objects from configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pensive.discovery.orchestrator import DiscoveryService
from pensive.observability.logging import get_logger
from pensive.rules.engine import RuleEngine
from pensive.search.ranking import RankingEngine
from pensive.store.cache import CachedTaxonomyAccessor
from pensive.store.sqlite_store import SqliteTaxonomyStore

if TYPE_CHECKING:
    from pensive.config import EngineConfig
    from pensive.store.memory import InMemoryTaxonomyStore

log = get_logger(__name__)


def create_discovery_service(
    config: EngineConfig,
    store: SqliteTaxonomyStore | InMemoryTaxonomyStore,
) -> DiscoveryService:
    """Wire a DiscoveryService over ``store``.

    Taxonomy reads go through a TTL cache that the store invalidates on
    every write to the affected fandom.
    """
    ttl = config.store.get_cache_ttl()
    accessor = CachedTaxonomyAccessor(store, ttl_seconds=ttl)
    store.add_listener(accessor.invalidate)

    search = config.search
    service = DiscoveryService(
        accessor,
        RuleEngine(
            store,
            compile_taxonomy=config.rules.compile_taxonomy,
            compiled_priority=config.rules.compiled_priority,
        ),
        RankingEngine(
            search.weights,
            chunk_size=search.chunk_size,
            excluded_statuses=search.excluded_statuses,
            require_overlap=search.require_overlap,
        ),
        default_limit=search.default_limit,
        max_limit=search.max_limit,
        min_results=search.min_results,
        include_popular=search.include_popular,
    )
    log.debug("discovery_service_created", cache_ttl=ttl)
    return service


def open_store(config: EngineConfig, database: str | None = None) -> SqliteTaxonomyStore:
    """Open the SQLite store named by ``database``, the environment or the config."""
    path = database or config.store.get_database() or ":memory:"
    log.debug("store_opened", database=path)
    return SqliteTaxonomyStore(path)
