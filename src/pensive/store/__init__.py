"""Taxonomy and rule storage: read contracts, backends and caching."""

from pensive.store.cache import CachedTaxonomyAccessor
from pensive.store.memory import InMemoryTaxonomyStore
from pensive.store.protocols import RuleStore, TaxonomyAccessor, TaxonomySnapshot
from pensive.store.seed import SeedError, load_seed_file, seed_store
from pensive.store.sqlite_store import SqliteTaxonomyStore

__all__ = [
    "CachedTaxonomyAccessor",
    "InMemoryTaxonomyStore",
    "RuleStore",
    "SeedError",
    "SqliteTaxonomyStore",
    "TaxonomyAccessor",
    "TaxonomySnapshot",
    "load_seed_file",
    "seed_store",
]
