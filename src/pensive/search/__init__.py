"""Relevance scoring and story ranking."""

from pensive.search.ranking import (
    RankingEngine,
    RankingOutcome,
    SortSpec,
    StoryFilters,
    apply_filters,
    relevance_distribution,
    sort_ranked,
)
from pensive.search.relevance import (
    ScoreWeights,
    UserPreferences,
    categorize_length,
    combine_factors,
)

__all__ = [
    "RankingEngine",
    "RankingOutcome",
    "ScoreWeights",
    "SortSpec",
    "StoryFilters",
    "UserPreferences",
    "apply_filters",
    "categorize_length",
    "combine_factors",
    "relevance_distribution",
    "sort_ranked",
]
