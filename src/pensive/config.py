"""Engine configuration loading.

Configuration lives in ``pensive.yaml``::

    search:
      default_limit: 20
      max_limit: 100
      chunk_size: 500
      excluded_statuses: [draft, hidden]
      require_overlap: true
      padding:
        min_results: 5
        include_popular: false
      weights:
        exact_matches: 0.40
        category_matches: 0.20
        semantic_similarity: 0.15
        popularity: 0.10
        recency: 0.08
        user_alignment: 0.07
    rules:
      compile_taxonomy: true
      compiled_priority: 0
    store:
      database: pensive.db
      cache_ttl_seconds: 30

Every key is optional. ``PENSIVE_DATABASE`` and ``PENSIVE_CACHE_TTL``
override the store settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from pensive.errors import PensiveError
from pensive.search.relevance import ScoreWeights

CONFIG_FILENAME = "pensive.yaml"
DEFAULT_LIMIT = 20
DEFAULT_MAX_LIMIT = 100
DEFAULT_CHUNK_SIZE = 500
DEFAULT_EXCLUDED_STATUSES = ["draft", "hidden"]
DEFAULT_MIN_RESULTS = 5
DEFAULT_CACHE_TTL = 30.0


class ConfigError(PensiveError):
    """Raised when configuration cannot be loaded."""

    def __init__(self, path: Path | None, reason: str) -> None:
        self.path = path
        self.reason = reason
        where = f" at {path}" if path is not None else ""
        super().__init__(f"Failed to load config{where}: {reason}")


@dataclass
class SearchConfig:
    """Ranking and padding settings."""

    default_limit: int = DEFAULT_LIMIT
    max_limit: int = DEFAULT_MAX_LIMIT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    excluded_statuses: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_STATUSES))
    require_overlap: bool = True
    min_results: int = DEFAULT_MIN_RESULTS
    include_popular: bool = False
    weights: ScoreWeights = field(default_factory=ScoreWeights)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchConfig:
        padding = data.get("padding", {})
        return cls(
            default_limit=int(data.get("default_limit", DEFAULT_LIMIT)),
            max_limit=int(data.get("max_limit", DEFAULT_MAX_LIMIT)),
            chunk_size=int(data.get("chunk_size", DEFAULT_CHUNK_SIZE)),
            excluded_statuses=list(data.get("excluded_statuses", DEFAULT_EXCLUDED_STATUSES)),
            require_overlap=bool(data.get("require_overlap", True)),
            min_results=int(padding.get("min_results", DEFAULT_MIN_RESULTS)),
            include_popular=bool(padding.get("include_popular", False)),
            weights=ScoreWeights.model_validate(dict(data.get("weights", {}))),
        )


@dataclass
class RulesConfig:
    """Rule loading settings."""

    compile_taxonomy: bool = True
    compiled_priority: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RulesConfig:
        return cls(
            compile_taxonomy=bool(data.get("compile_taxonomy", True)),
            compiled_priority=int(data.get("compiled_priority", 0)),
        )


@dataclass
class StoreConfig:
    """Storage settings.

    Resolution order: environment variable, then config file, then default.
    """

    database: str | None = None
    cache_ttl_seconds: float | None = None

    def get_database(self) -> str | None:
        return os.getenv("PENSIVE_DATABASE") or self.database

    def get_cache_ttl(self) -> float:
        """Effective cache TTL in seconds; 0 disables caching.

        Raises:
            ConfigError: If PENSIVE_CACHE_TTL is not a non-negative number.
        """
        raw = os.getenv("PENSIVE_CACHE_TTL")
        if raw:
            try:
                ttl = float(raw)
            except ValueError as e:
                raise ConfigError(None, f"PENSIVE_CACHE_TTL is not a number: {raw!r}") from e
            if ttl < 0:
                raise ConfigError(None, f"PENSIVE_CACHE_TTL must be >= 0, got {raw!r}")
            return ttl
        if self.cache_ttl_seconds is not None:
            return self.cache_ttl_seconds
        return DEFAULT_CACHE_TTL

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoreConfig:
        ttl = data.get("cache_ttl_seconds")
        return cls(
            database=data.get("database"),
            cache_ttl_seconds=float(ttl) if ttl is not None else None,
        )


@dataclass
class EngineConfig:
    """Configuration for the checking and ranking engine."""

    search: SearchConfig = field(default_factory=SearchConfig)
    rules: RulesConfig = field(default_factory=RulesConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        """Create config from a mapping as read from YAML.

        Raises:
            ValueError: If a value has the wrong type or the weights are invalid.
        """
        return cls(
            search=SearchConfig.from_dict(dict(data.get("search") or {})),
            rules=RulesConfig.from_dict(dict(data.get("rules") or {})),
            store=StoreConfig.from_dict(dict(data.get("store") or {})),
        )


def load_config(path: Path | None = None) -> EngineConfig:
    """Load engine configuration.

    Args:
        path: Config file to read. When None, ``pensive.yaml`` in the current
            directory is used if it exists, otherwise defaults apply.

    Returns:
        EngineConfig instance.

    Raises:
        ConfigError: If an explicit file is missing or any file cannot be parsed.
    """
    if path is None:
        candidate = Path(CONFIG_FILENAME)
        if not candidate.exists():
            return EngineConfig()
        path = candidate
    elif not path.exists():
        raise ConfigError(path, "File not found")

    yaml = YAML()
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            return EngineConfig()
        if not isinstance(data, dict):
            raise ConfigError(path, "Top level must be a mapping")

        return EngineConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(path, str(e)) from e
