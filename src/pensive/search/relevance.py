"""Per-story relevance factors and their weighted combination.

Every factor is normalized to [0, 100]. Missing counters or dates never
raise: they score as zero, except user alignment which is a neutral 50 when
no preferences are given.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, model_validator

from pensive.models.results import RelevanceBreakdown

if TYPE_CHECKING:
    from pensive.models.taxonomy import PathwayItem, Story

_TOKEN_SPLIT = re.compile(r"[/\-\s]+")
MIN_KEYWORD_LENGTH = 3
SUMMARY_TOKEN_LIMIT = 50

MAX_KUDOS = 10_000
MAX_HITS = 100_000
MAX_BOOKMARKS = 5_000

FULL_RECENCY_DAYS = 30
ZERO_RECENCY_DAYS = 365
NEUTRAL_ALIGNMENT = 50.0

LengthBucket = str
LENGTH_BUCKETS: list[tuple[int, LengthBucket]] = [
    (1_000, "drabble"),
    (5_000, "oneshot"),
    (20_000, "short"),
    (50_000, "medium"),
    (100_000, "long"),
]


class ScoreWeights(BaseModel):
    """Weights of the six factors; they must sum to 1.00."""

    exact_matches: float = Field(default=0.40, ge=0)
    category_matches: float = Field(default=0.20, ge=0)
    semantic_similarity: float = Field(default=0.15, ge=0)
    popularity: float = Field(default=0.10, ge=0)
    recency: float = Field(default=0.08, ge=0)
    user_alignment: float = Field(default=0.07, ge=0)

    @model_validator(mode="after")
    def _check_sum(self) -> ScoreWeights:
        total = (
            self.exact_matches
            + self.category_matches
            + self.semantic_similarity
            + self.popularity
            + self.recency
            + self.user_alignment
        )
        if abs(total - 1.0) > 1e-6:
            msg = f"Relevance weights must sum to 1.00, got {total:.4f}"
            raise ValueError(msg)
        return self


class UserPreferences(BaseModel):
    """Optional reader preferences. Empty lists are treated as not supplied."""

    ratings: list[str] = Field(default_factory=list)
    lengths: list[LengthBucket] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    boost_tag_ids: list[str] = Field(default_factory=list)


def categorize_length(word_count: int) -> LengthBucket:
    """Bucket a word count: drabble, oneshot, short, medium, long or epic."""
    for upper, bucket in LENGTH_BUCKETS:
        if word_count < upper:
            return bucket
    return "epic"


def tokenize(text: str) -> list[str]:
    return [t for t in _TOKEN_SPLIT.split(text) if t]


def pathway_keywords(pathway: Iterable[PathwayItem]) -> list[str]:
    """Item names plus their slash/dash/space tokens, lowercased and deduplicated."""
    keywords: list[str] = []
    for item in pathway:
        keywords.append(item.name)
        keywords.extend(tokenize(item.name))
    return list(dict.fromkeys(k.lower() for k in keywords if len(k) >= MIN_KEYWORD_LENGTH))


def story_keywords(story: Story) -> list[str]:
    """Title tokens plus the first 50 summary tokens, lowercased and deduplicated."""
    tokens = tokenize(story.title) + tokenize(story.summary)[:SUMMARY_TOKEN_LIMIT]
    return list(dict.fromkeys(t.lower() for t in tokens if len(t) >= MIN_KEYWORD_LENGTH))


# ---------------------------------------------------------------------------
# Factors
# ---------------------------------------------------------------------------


def exact_match_score(
    pathway: Sequence[PathwayItem],
    story_tag_ids: set[str],
    story_plot_block_ids: set[str],
) -> float:
    if not pathway:
        return 0.0
    matched = sum(
        1
        for item in pathway
        if item.id in (story_tag_ids if item.type == "tag" else story_plot_block_ids)
    )
    return matched / len(pathway) * 100


def category_match_score(
    pathway_categories: tuple[Sequence[str | None], Sequence[str | None]],
    story_categories: tuple[Sequence[str | None], Sequence[str | None]],
) -> float:
    """Share of same-category pairs among pathway x story comparisons.

    Tags are compared with tags and plot blocks with plot blocks; both
    arguments are ``(tag_categories, plot_block_categories)``. A missing
    category never matches.
    """
    matched = 0
    comparisons = 0
    for ours, theirs in zip(pathway_categories, story_categories, strict=True):
        comparisons += len(ours) * len(theirs)
        counts = Counter(c for c in theirs if c is not None)
        matched += sum(counts[c] for c in ours if c is not None)
    return matched / comparisons * 100 if comparisons else 0.0


def semantic_similarity_score(keywords: Sequence[str], story_words: Sequence[str]) -> float:
    """Share of pathway keywords overlapping a story keyword as a substring, either way."""
    if not keywords:
        return 0.0
    common = sum(
        1 for k in keywords if any(k in word or word in k for word in story_words)
    )
    return common / len(keywords) * 100


def popularity_score(story: Story) -> float:
    return (
        min(story.kudos, MAX_KUDOS) / MAX_KUDOS * 40
        + min(story.hits, MAX_HITS) / MAX_HITS * 35
        + min(story.bookmarks, MAX_BOOKMARKS) / MAX_BOOKMARKS * 25
    )


def recency_score(updated_at: datetime | None, now: datetime) -> float:
    """100 up to 30 days old, linear decay to 0 at 365 days. Naive times are UTC."""
    if updated_at is None:
        return 0.0
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=UTC)
    days = (now - updated_at).total_seconds() / 86_400
    if days <= FULL_RECENCY_DAYS:
        return 100.0
    if days <= ZERO_RECENCY_DAYS:
        span = ZERO_RECENCY_DAYS - FULL_RECENCY_DAYS
        return max(0.0, 100 - (days - FULL_RECENCY_DAYS) / span * 100)
    return 0.0


def user_alignment_score(
    story: Story,
    story_tag_ids: set[str],
    preferences: UserPreferences | None,
) -> float:
    """25 points per matched preference dimension, scaled by the dimensions supplied."""
    if preferences is None:
        return NEUTRAL_ALIGNMENT

    score = 0
    factors = 0
    if preferences.ratings:
        factors += 1
        score += 25 if (story.rating or "unrated") in preferences.ratings else 0
    if preferences.lengths:
        factors += 1
        score += 25 if categorize_length(story.word_count) in preferences.lengths else 0
    if preferences.statuses:
        factors += 1
        score += 25 if (story.status or "unknown") in preferences.statuses else 0
    if preferences.boost_tag_ids:
        factors += 1
        score += 25 if story_tag_ids.intersection(preferences.boost_tag_ids) else 0

    return score / factors * 4 if factors else NEUTRAL_ALIGNMENT


def combine_factors(breakdown: RelevanceBreakdown, weights: ScoreWeights) -> float:
    """Weighted sum of the factors, clamped to [0, 100]."""
    total = (
        breakdown.exact_matches * weights.exact_matches
        + breakdown.category_matches * weights.category_matches
        + breakdown.semantic_similarity * weights.semantic_similarity
        + breakdown.popularity * weights.popularity
        + breakdown.recency * weights.recency
        + breakdown.user_alignment * weights.user_alignment
    )
    return min(100.0, max(0.0, total))


def now_utc() -> datetime:
    return datetime.now(UTC)
