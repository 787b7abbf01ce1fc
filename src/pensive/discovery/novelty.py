"""Novelty heuristics over a pathway and its search results."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from typing import TYPE_CHECKING

from pensive.models.results import NoveltyAnalysis
from pensive.validation.shape import ordered

if TYPE_CHECKING:
    from pensive.models.results import RankedStory
    from pensive.models.taxonomy import PathwayItem

LOW_RELEVANCE = 30.0
MAX_LOW_RELEVANCE_MATCHES = 3
PAIR_WINDOW = 2
MAX_GENERATED_COMBINATIONS = 5
MAX_SURFACED_COMBINATIONS = 3
RARE_THRESHOLD = 2

# (category keywords, missing element, suggested addition)
_ELEMENT_CHECKS: list[tuple[tuple[str, ...], str, str]] = [
    (("character", "ship"), "character focus", "character development"),
    (("genre",), "genre specification", "genre elements"),
]


def pair_combinations(names: Sequence[str]) -> list[str]:
    """Pair each name with its next two neighbours, as ``"A + B"``."""
    pairs: list[str] = []
    for i, first in enumerate(names):
        for second in names[i + 1 : i + 1 + PAIR_WINDOW]:
            pairs.append(f"{first} + {second}")
            if len(pairs) == MAX_GENERATED_COMBINATIONS:
                return pairs
    return pairs


def analyze_novelty(
    pathway: Sequence[PathwayItem],
    results: Sequence[RankedStory],
) -> NoveltyAnalysis:
    """Surface unusual combinations, rare elements and missing element kinds.

    Combinations are only surfaced when fewer than three results score
    below 30. An element is rare when fewer than two results matched it.
    """
    items = ordered(pathway)
    analysis = NoveltyAnalysis()

    low_matches = sum(1 for r in results if r.relevance_score < LOW_RELEVANCE)
    if low_matches < MAX_LOW_RELEVANCE_MATCHES:
        combos = pair_combinations([i.name for i in items])
        analysis.unusual_combinations = combos[:MAX_SURFACED_COMBINATIONS]

    frequency: Counter[str] = Counter()
    for r in results:
        frequency.update(r.matched_tags)
        frequency.update(r.matched_plot_blocks)
    analysis.rare_elements = [i.name for i in items if frequency[i.id] < RARE_THRESHOLD]

    categories = [(i.category or "").lower() for i in items]
    for keywords, missing, suggestion in _ELEMENT_CHECKS:
        if not any(k in c for c in categories for k in keywords):
            analysis.missing_elements.append(missing)
            analysis.suggested_additions.append(suggestion)
    if not any(i.type == "plot_block" for i in items):
        analysis.missing_elements.append("plot structure")
        analysis.suggested_additions.append("plot development")

    return analysis
