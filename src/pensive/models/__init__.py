"""Pydantic models for taxonomy records, the rule language and results."""

from pensive.models.results import (
    DiscoveryResponse,
    FilterStats,
    NoveltyAnalysis,
    RankedStory,
    RelationshipError,
    RelevanceBreakdown,
    RelevanceDistribution,
    ResultItem,
    ScopeViolations,
    SearchFilters,
    SearchMetadata,
    SearchStats,
    StoryPrompt,
    ValidationResult,
)
from pensive.models.rules import (
    CombinationCondition,
    ExclusionCondition,
    HasPlotBlockCondition,
    HasTagCondition,
    MalformedCondition,
    RuleAction,
    RuleCondition,
    TagCountCondition,
    ValidationRule,
    parse_condition,
)
from pensive.models.taxonomy import (
    CategoryRestrictions,
    ClassDependencies,
    Fandom,
    InstanceLimits,
    MutualExclusion,
    PathwayItem,
    PlotBlock,
    RequiredContext,
    Story,
    Tag,
    TagClass,
)

__all__ = [
    "CategoryRestrictions",
    "ClassDependencies",
    "CombinationCondition",
    "DiscoveryResponse",
    "ExclusionCondition",
    "Fandom",
    "FilterStats",
    "HasPlotBlockCondition",
    "HasTagCondition",
    "InstanceLimits",
    "MalformedCondition",
    "MutualExclusion",
    "NoveltyAnalysis",
    "PathwayItem",
    "PlotBlock",
    "RankedStory",
    "RelationshipError",
    "RelevanceBreakdown",
    "RelevanceDistribution",
    "RequiredContext",
    "ResultItem",
    "RuleAction",
    "RuleCondition",
    "ScopeViolations",
    "SearchFilters",
    "SearchMetadata",
    "SearchStats",
    "Story",
    "StoryPrompt",
    "Tag",
    "TagClass",
    "TagCountCondition",
    "ValidationResult",
    "ValidationRule",
    "parse_condition",
]
