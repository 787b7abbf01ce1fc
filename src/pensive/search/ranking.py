"""Score, filter, sort and paginate a fandom's stories against a pathway.

All story-to-tag and story-to-plot-block membership comes from the
snapshot, indexed once per call before scoring starts. Scoring walks the
candidates in fixed-size chunks; chunking never changes the result.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from pensive.models.results import (
    FilterStats,
    RankedStory,
    RelevanceBreakdown,
    RelevanceDistribution,
    SearchStats,
)
from pensive.observability.logging import get_logger
from pensive.search.relevance import (
    ScoreWeights,
    UserPreferences,
    category_match_score,
    combine_factors,
    exact_match_score,
    now_utc,
    pathway_keywords,
    popularity_score,
    recency_score,
    semantic_similarity_score,
    story_keywords,
    user_alignment_score,
)

if TYPE_CHECKING:
    from pensive.models.taxonomy import PathwayItem, Story
    from pensive.store.protocols import TaxonomySnapshot

log = get_logger(__name__)

SortField = Literal["relevance", "updated_at", "kudos", "word_count"]
SortDirection = Literal["asc", "desc"]

PADDING_RELEVANCE = 50.0
_EPOCH = datetime.min.replace(tzinfo=UTC)


class StoryFilters(BaseModel):
    """Post-score filters; every supplied filter must pass."""

    ratings: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    min_word_count: int | None = Field(default=None, ge=0)
    max_word_count: int | None = Field(default=None, ge=0)
    updated_after: datetime | None = None
    min_relevance: float | None = Field(default=None, ge=0, le=100)


class SortSpec(BaseModel):
    field: SortField = "relevance"
    direction: SortDirection = "desc"


@dataclass
class _IndexedStory:
    story: Story
    tag_ids: set[str]
    plot_block_ids: set[str]
    tag_categories: list[str | None]
    plot_block_categories: list[str | None]
    keywords: list[str]


@dataclass
class RankingOutcome:
    """A page of ranked stories plus statistics over the whole filtered set.

    Attributes:
        results: The requested page, ranks already assigned.
        stats: Distribution and filter counts over the filtered set.
        total: Number of stories after filtering, before pagination.
        candidate_ids: Ids of every scored candidate, filtered out or not.
    """

    results: list[RankedStory] = field(default_factory=list)
    stats: SearchStats = field(default_factory=SearchStats)
    total: int = 0
    candidate_ids: list[str] = field(default_factory=list)


def _updated(story: Story) -> datetime:
    if story.updated_at is None:
        return _EPOCH
    if story.updated_at.tzinfo is None:
        return story.updated_at.replace(tzinfo=UTC)
    return story.updated_at


_SORT_KEYS: dict[str, Callable[[RankedStory], object]] = {
    "relevance": lambda r: r.relevance_score,
    "updated_at": lambda r: _updated(r.story),
    "kudos": lambda r: r.story.kudos,
    "word_count": lambda r: r.story.word_count,
}


def sort_ranked(stories: Sequence[RankedStory], spec: SortSpec) -> list[RankedStory]:
    """Stable sort; ties keep their prior relative order in either direction."""
    return sorted(stories, key=_SORT_KEYS[spec.field], reverse=spec.direction == "desc")


def relevance_distribution(stories: Sequence[RankedStory]) -> RelevanceDistribution:
    dist = RelevanceDistribution()
    for r in stories:
        if r.relevance_score >= 90:
            dist.excellent += 1
        elif r.relevance_score >= 70:
            dist.good += 1
        elif r.relevance_score >= 50:
            dist.fair += 1
        else:
            dist.poor += 1
    return dist


def apply_filters(
    stories: Sequence[RankedStory],
    filters: StoryFilters | None,
) -> tuple[list[RankedStory], list[str]]:
    """Apply post-score filters.

    Returns:
        The kept stories, in order, and the names of the filters applied.
    """
    if filters is None:
        return list(stories), []

    checks: list[tuple[str, Callable[[RankedStory], bool]]] = []
    if filters.ratings:
        checks.append(("ratings", lambda r: r.story.rating in filters.ratings))
    if filters.statuses:
        checks.append(("statuses", lambda r: r.story.status in filters.statuses))
    if filters.min_word_count is not None or filters.max_word_count is not None:
        low = filters.min_word_count or 0
        high = filters.max_word_count

        def word_count_ok(r: RankedStory) -> bool:
            return r.story.word_count >= low and (high is None or r.story.word_count <= high)

        checks.append(("word_count", word_count_ok))
    if filters.updated_after is not None:
        after = filters.updated_after
        if after.tzinfo is None:
            after = after.replace(tzinfo=UTC)
        checks.append(
            ("update_date", lambda r: r.story.updated_at is not None and _updated(r.story) > after)
        )
    if filters.min_relevance is not None:
        minimum = filters.min_relevance
        checks.append(("relevance_score", lambda r: r.relevance_score >= minimum))

    kept = [r for r in stories if all(check(r) for _, check in checks)]
    return kept, [name for name, _ in checks]


class RankingEngine:
    """Scores candidate stories with six weighted factors."""

    def __init__(
        self,
        weights: ScoreWeights | None = None,
        *,
        chunk_size: int = 500,
        excluded_statuses: Sequence[str] = ("draft", "hidden"),
        require_overlap: bool = True,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        if chunk_size < 1:
            msg = f"chunk_size must be >= 1, got {chunk_size}"
            raise ValueError(msg)
        self.weights = weights or ScoreWeights()
        self.chunk_size = chunk_size
        self.excluded_statuses = frozenset(excluded_statuses)
        self.require_overlap = require_overlap
        self._clock = clock

    # -- Candidates ------------------------------------------------------------

    def candidates(
        self,
        pathway: Sequence[PathwayItem],
        snapshot: TaxonomySnapshot,
    ) -> list[Story]:
        """Active stories not in an excluded status, sharing a pathway item if required."""
        tag_ids = {i.id for i in pathway if i.type == "tag"}
        block_ids = {i.id for i in pathway if i.type == "plot_block"}
        found: list[Story] = []
        for story in snapshot.stories:
            if not story.is_active or story.status in self.excluded_statuses:
                continue
            if self.require_overlap and not (
                tag_ids.intersection(story.tag_ids) or block_ids.intersection(story.plot_block_ids)
            ):
                continue
            found.append(story)
        return found

    def _index(self, stories: Sequence[Story], snapshot: TaxonomySnapshot) -> list[_IndexedStory]:
        tags = snapshot.tags_by_id
        blocks = snapshot.plot_blocks_by_id
        return [
            _IndexedStory(
                story=s,
                tag_ids=set(s.tag_ids),
                plot_block_ids=set(s.plot_block_ids),
                tag_categories=[tags[t].category for t in s.tag_ids if t in tags],
                plot_block_categories=[blocks[p].category for p in s.plot_block_ids if p in blocks],
                keywords=story_keywords(s),
            )
            for s in stories
        ]

    # -- Scoring ---------------------------------------------------------------

    def score_story(
        self,
        pathway: Sequence[PathwayItem],
        story: Story,
        snapshot: TaxonomySnapshot,
        preferences: UserPreferences | None = None,
    ) -> RankedStory:
        """Score a single story; convenience wrapper over the batch path."""
        return self.score(pathway, [story], snapshot, preferences)[0]

    def score(
        self,
        pathway: Sequence[PathwayItem],
        stories: Sequence[Story],
        snapshot: TaxonomySnapshot,
        preferences: UserPreferences | None = None,
    ) -> list[RankedStory]:
        """Score ``stories`` in candidate order."""
        now = self._clock()
        indexed = self._index(stories, snapshot)
        tags = snapshot.tags_by_id
        blocks = snapshot.plot_blocks_by_id
        pathway_tags = [i for i in pathway if i.type == "tag"]
        pathway_blocks = [i for i in pathway if i.type == "plot_block"]
        pathway_categories = (
            [tags[i.id].category for i in pathway_tags if i.id in tags],
            [blocks[i.id].category for i in pathway_blocks if i.id in blocks],
        )
        keywords = pathway_keywords(pathway)

        scored: list[RankedStory] = []
        for start in range(0, len(indexed), self.chunk_size):
            for entry in indexed[start : start + self.chunk_size]:
                breakdown = RelevanceBreakdown(
                    exact_matches=exact_match_score(pathway, entry.tag_ids, entry.plot_block_ids),
                    category_matches=category_match_score(
                        pathway_categories,
                        (entry.tag_categories, entry.plot_block_categories),
                    ),
                    semantic_similarity=semantic_similarity_score(keywords, entry.keywords),
                    popularity=popularity_score(entry.story),
                    recency=recency_score(entry.story.updated_at, now),
                    user_alignment=user_alignment_score(entry.story, entry.tag_ids, preferences),
                )
                breakdown.final_score = combine_factors(breakdown, self.weights)
                scored.append(
                    RankedStory(
                        story=entry.story,
                        relevance_score=breakdown.final_score,
                        factors=breakdown,
                        matched_tags=[i.id for i in pathway_tags if i.id in entry.tag_ids],
                        matched_plot_blocks=[
                            i.id for i in pathway_blocks if i.id in entry.plot_block_ids
                        ],
                    )
                )
        return scored

    # -- Full pipeline ---------------------------------------------------------

    def rank(
        self,
        pathway: Sequence[PathwayItem],
        snapshot: TaxonomySnapshot,
        *,
        preferences: UserPreferences | None = None,
        filters: StoryFilters | None = None,
        sort: SortSpec | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> RankingOutcome:
        """Score, filter, sort, rank and paginate the fandom's candidate stories.

        Args:
            pathway: The user's pathway.
            snapshot: Taxonomy of the fandom, including its stories.
            preferences: Optional reader preferences for user alignment.
            filters: Optional post-score filters.
            sort: Sort field and direction; relevance descending by default.
            limit: Page size.
            offset: Index of the first result of the page.

        Returns:
            The page, statistics over the filtered set, and the filtered count.
        """
        if limit < 0 or offset < 0:
            msg = f"limit and offset must be >= 0, got limit={limit} offset={offset}"
            raise ValueError(msg)

        started = time.perf_counter()
        scored = self.score(pathway, self.candidates(pathway, snapshot), snapshot, preferences)
        kept, applied = apply_filters(scored, filters)
        ordered = sort_ranked(kept, sort or SortSpec())
        for rank, ranked in enumerate(ordered, start=1):
            ranked.search_rank = rank

        stats = SearchStats(
            total_results=len(ordered),
            relevance_distribution=relevance_distribution(ordered),
            filter_stats=FilterStats(
                before_filters=len(scored),
                after_filters=len(kept),
                filters_applied=applied,
            ),
        )
        log.debug(
            "stories_ranked",
            candidates=len(scored),
            kept=len(kept),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return RankingOutcome(
            results=ordered[offset : offset + limit],
            stats=stats,
            total=len(ordered),
            candidate_ids=[r.story.id for r in scored],
        )

    def popular(
        self,
        snapshot: TaxonomySnapshot,
        *,
        exclude_ids: Collection[str],
        count: int,
        filters: StoryFilters | None = None,
    ) -> list[RankedStory]:
        """Longest, then most recently updated, eligible stories not in ``exclude_ids``.

        Returned stories carry a fixed relevance of 50, no matches and
        ``padded=True``; ranks are left for the caller to assign. ``filters``
        apply to them exactly as to ranked stories.
        """
        if count <= 0:
            return []
        excluded = set(exclude_ids)
        pool = [
            s
            for s in snapshot.stories
            if s.is_active and s.status not in self.excluded_statuses and s.id not in excluded
        ]
        pool.sort(key=lambda s: (s.word_count, _updated(s)), reverse=True)
        padded = [RankedStory(story=s, relevance_score=PADDING_RELEVANCE, padded=True) for s in pool]
        kept, _ = apply_filters(padded, filters)
        return kept[:count]
