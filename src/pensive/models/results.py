"""Result types returned by validation, ranking and discovery."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field

from pensive.models.rules import Severity  # noqa: TC001 - pydantic resolves at runtime
from pensive.models.taxonomy import Story  # noqa: TC001 - pydantic resolves at runtime


class ResultItem(BaseModel):
    """One fired action, attributed to the rule that produced it."""

    rule: str
    message: str
    severity: Severity = "medium"
    fix: str | None = None
    rule_id: str | None = None


class ValidationResult(BaseModel):
    """Bucketed outcome of checking a pathway.

    ``is_valid`` depends only on ``errors`` and ``blocked_combinations``;
    warnings and suggestions never make a pathway invalid.
    """

    errors: list[ResultItem] = Field(default_factory=list)
    warnings: list[ResultItem] = Field(default_factory=list)
    suggestions: list[ResultItem] = Field(default_factory=list)
    blocked_combinations: list[ResultItem] = Field(default_factory=list)
    rules_evaluated: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not self.errors and not self.blocked_combinations

    def merge(self, other: ValidationResult) -> ValidationResult:
        """Return a new result with ``other``'s items appended after this one's."""
        return ValidationResult(
            errors=[*self.errors, *other.errors],
            warnings=[*self.warnings, *other.warnings],
            suggestions=[*self.suggestions, *other.suggestions],
            blocked_combinations=[*self.blocked_combinations, *other.blocked_combinations],
            rules_evaluated=self.rules_evaluated + other.rules_evaluated,
        )


RelationshipErrorType = Literal[
    "invalid_tag_class",
    "invalid_parent",
    "circular_dependency",
    "cross_fandom_reference",
]


class RelationshipError(BaseModel):
    """A structured, non-fatal taxonomy consistency problem."""

    type: RelationshipErrorType
    message: str
    entity_id: str
    related_id: str | None = None


class ScopeViolations(BaseModel):
    """Ids that are not active members of the fandom, per entity kind."""

    invalid_tags: list[str] = Field(default_factory=list)
    invalid_plot_blocks: list[str] = Field(default_factory=list)
    invalid_tag_classes: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not (self.invalid_tags or self.invalid_plot_blocks or self.invalid_tag_classes)


class RelevanceBreakdown(BaseModel):
    """The six relevance factors of one story, each in [0, 100]."""

    exact_matches: float = 0.0
    category_matches: float = 0.0
    semantic_similarity: float = 0.0
    popularity: float = 0.0
    recency: float = 0.0
    user_alignment: float = 0.0
    final_score: float = 0.0


class RankedStory(BaseModel):
    """A story scored against a pathway.

    ``matched_tags`` and ``matched_plot_blocks`` hold the ids of pathway
    items found on the story. ``padded`` marks popular stories appended to
    short result lists; those carry no matches.
    """

    story: Story
    relevance_score: float
    factors: RelevanceBreakdown = Field(default_factory=RelevanceBreakdown)
    matched_tags: list[str] = Field(default_factory=list)
    matched_plot_blocks: list[str] = Field(default_factory=list)
    search_rank: int = 0
    padded: bool = False


class RelevanceDistribution(BaseModel):
    excellent: int = 0
    good: int = 0
    fair: int = 0
    poor: int = 0


class FilterStats(BaseModel):
    before_filters: int = 0
    after_filters: int = 0
    filters_applied: list[str] = Field(default_factory=list)


class SearchStats(BaseModel):
    """Statistics over the filtered, pre-pagination result set."""

    total_results: int = 0
    relevance_distribution: RelevanceDistribution = Field(default_factory=RelevanceDistribution)
    filter_stats: FilterStats = Field(default_factory=FilterStats)


class NoveltyAnalysis(BaseModel):
    """Heuristics about unusual or under-represented pathway elements."""

    unusual_combinations: list[str] = Field(default_factory=list)
    rare_elements: list[str] = Field(default_factory=list)
    missing_elements: list[str] = Field(default_factory=list)
    suggested_additions: list[str] = Field(default_factory=list)


class StoryPrompt(BaseModel):
    """A generated free-text writing prompt for the pathway."""

    text: str
    novelty_highlights: list[str] = Field(default_factory=list)
    completion_suggestions: list[str] = Field(default_factory=list)


class SearchFilters(BaseModel):
    """Names derived from the pathway that drove the search."""

    tag_names: list[str] = Field(default_factory=list)
    plot_block_names: list[str] = Field(default_factory=list)


class SearchMetadata(BaseModel):
    total_results: int = 0
    search_time_ms: float = 0.0
    has_more_results: bool = False
    search_filters: SearchFilters = Field(default_factory=SearchFilters)


class DiscoveryResponse(BaseModel):
    """Everything returned for one submitted pathway."""

    results: list[RankedStory] = Field(default_factory=list)
    validation: ValidationResult = Field(default_factory=ValidationResult)
    stats: SearchStats = Field(default_factory=SearchStats)
    novelty: NoveltyAnalysis = Field(default_factory=NoveltyAnalysis)
    prompt: StoryPrompt | None = None
    metadata: SearchMetadata = Field(default_factory=SearchMetadata)
