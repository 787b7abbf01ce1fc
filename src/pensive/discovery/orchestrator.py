"""Submit a pathway, get back validation, ranked stories and a prompt.

Each call reads the fandom's taxonomy once and its rules once, then
computes everything from those values. Any read failure surfaces as a single
StoreReadError and no partial response is produced.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, TypeVar

from pensive.discovery.novelty import analyze_novelty
from pensive.discovery.prompt import generate_prompt
from pensive.errors import FandomNotFoundError, PensiveError, StoreReadError
from pensive.models.results import (
    DiscoveryResponse,
    SearchFilters,
    SearchMetadata,
    StoryPrompt,
)
from pensive.observability.logging import get_logger, log_context
from pensive.validation.scope import (
    check_hierarchy,
    pathway_scope_result,
    validate_entity_relationships,
    validate_fandom_scope,
)
from pensive.validation.shape import validate_pathway_shape

if TYPE_CHECKING:
    from pensive.models.results import (
        RankedStory,
        RelationshipError,
        ScopeViolations,
        ValidationResult,
    )
    from pensive.models.taxonomy import PathwayItem, Tag
    from pensive.rules.engine import RuleEngine
    from pensive.search.ranking import RankingEngine, RankingOutcome, SortSpec, StoryFilters
    from pensive.search.relevance import UserPreferences
    from pensive.store.protocols import TaxonomyAccessor, TaxonomySnapshot
    from pensive.validation.scope import EntityRelationships

log = get_logger(__name__)

T = TypeVar("T")


def _read(operation: str, fandom_id: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except PensiveError:
        raise
    except Exception as e:
        raise StoreReadError(operation, fandom_id, str(e)) from e


class DiscoveryService:
    """Composes scope checks, rule evaluation and ranking for one fandom call.

    Built once at the composition root (see :mod:`pensive.services`) and
    shared by reference; it holds no per-call state.
    """

    def __init__(
        self,
        accessor: TaxonomyAccessor,
        rule_engine: RuleEngine,
        ranking: RankingEngine,
        *,
        default_limit: int = 20,
        max_limit: int = 100,
        min_results: int = 5,
        include_popular: bool = False,
    ) -> None:
        self._accessor = accessor
        self._rule_engine = rule_engine
        self._ranking = ranking
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.min_results = min_results
        self.include_popular = include_popular

    # -- Reads -----------------------------------------------------------------

    def _snapshot(self, fandom_id: str) -> TaxonomySnapshot:
        """Read the fandom's taxonomy, failing if the fandom is missing or inactive."""
        snapshot = _read("get_taxonomy", fandom_id, lambda: self._accessor.get(fandom_id, True))
        if snapshot.fandom is None:
            raise FandomNotFoundError(fandom_id)
        if not snapshot.fandom.is_active:
            raise FandomNotFoundError(fandom_id, inactive=True)
        return snapshot

    def _rules_result(
        self,
        pathway: Sequence[PathwayItem],
        fandom_id: str,
        snapshot: TaxonomySnapshot,
    ) -> ValidationResult:
        rules = _read(
            "list_active_rules",
            fandom_id,
            lambda: self._rule_engine.load_rules(fandom_id, snapshot),
        )
        return self._rule_engine.evaluate(pathway, rules)

    # -- Validation ------------------------------------------------------------

    def validate(self, pathway: Sequence[PathwayItem], fandom_id: str) -> ValidationResult:
        """Shape, scope and rule checks without searching.

        Rule evaluation is skipped when the pathway is empty or has duplicate ids.
        """
        with log_context(fandom_id=fandom_id):
            snapshot = self._snapshot(fandom_id)
            result, _ = self._validate(pathway, fandom_id, snapshot)
            return result

    def _validate(
        self,
        pathway: Sequence[PathwayItem],
        fandom_id: str,
        snapshot: TaxonomySnapshot,
    ) -> tuple[ValidationResult, bool]:
        """Validation result and whether the pathway's shape allows searching."""
        shape = validate_pathway_shape(pathway)
        if not shape.is_valid:
            return shape, False
        scope = pathway_scope_result(snapshot, pathway)
        return shape.merge(scope).merge(self._rules_result(pathway, fandom_id, snapshot)), True

    def validate_fandom_scope(
        self,
        fandom_id: str,
        *,
        tag_ids: Iterable[str] = (),
        plot_block_ids: Iterable[str] = (),
        tag_class_ids: Iterable[str] = (),
    ) -> ScopeViolations:
        with log_context(fandom_id=fandom_id):
            return validate_fandom_scope(
                self._snapshot(fandom_id),
                tag_ids=tag_ids,
                plot_block_ids=plot_block_ids,
                tag_class_ids=tag_class_ids,
            )

    def validate_entity_relationships(
        self,
        fandom_id: str,
        relationships: EntityRelationships,
    ) -> list[RelationshipError]:
        with log_context(fandom_id=fandom_id):
            return validate_entity_relationships(self._snapshot(fandom_id), relationships)

    def check_hierarchy(self, fandom_id: str) -> list[RelationshipError]:
        """Audit the fandom's own taxonomy links and plot-block hierarchy."""
        with log_context(fandom_id=fandom_id):
            return check_hierarchy(self._snapshot(fandom_id))

    # -- Search ----------------------------------------------------------------

    def perform_search(
        self,
        pathway: Sequence[PathwayItem],
        fandom_id: str,
        filters: StoryFilters | None = None,
        limit: int | None = None,
        *,
        offset: int = 0,
        sort: SortSpec | None = None,
        preferences: UserPreferences | None = None,
        include_popular: bool | None = None,
    ) -> DiscoveryResponse:
        """Validate a pathway and rank the fandom's stories against it.

        Args:
            pathway: The user's pathway.
            fandom_id: Fandom the pathway belongs to.
            filters: Optional post-score story filters.
            limit: Page size; defaults to the configured limit, capped at max_limit.
            offset: Index of the first result.
            sort: Sort field and direction; relevance descending by default.
            preferences: Optional reader preferences.
            include_popular: Pad the page that ends the ranked list with popular
                stories up to ``min_results``.
                Defaults to the configured setting.

        Returns:
            The validation result, the ranked page, statistics, novelty
            analysis, a writing prompt and request metadata. When the pathway
            is empty or repeats an item, only the validation is filled in.

        Raises:
            FandomNotFoundError: If the fandom is missing or inactive.
            StoreReadError: If a taxonomy or rule read fails.
        """
        with log_context(fandom_id=fandom_id):
            started = time.perf_counter()
            snapshot = self._snapshot(fandom_id)
            validation, searchable = self._validate(pathway, fandom_id, snapshot)
            if not searchable:
                return DiscoveryResponse(validation=validation)

            page_size = min(limit if limit is not None else self.default_limit, self.max_limit)
            outcome = self._ranking.rank(
                pathway,
                snapshot,
                preferences=preferences,
                filters=filters,
                sort=sort,
                limit=page_size,
                offset=offset,
            )
            results = outcome.results

            pad = self.include_popular if include_popular is None else include_popular
            if pad and offset <= outcome.total:
                results = self._pad(results, outcome, snapshot, filters, page_size)

            novelty = analyze_novelty(pathway, results)
            prompt = StoryPrompt(
                text=generate_prompt(pathway, novelty.unusual_combinations),
                novelty_highlights=novelty.unusual_combinations,
                completion_suggestions=novelty.suggested_additions,
            )
            elapsed_ms = (time.perf_counter() - started) * 1000

            log.info(
                "search_completed",
                pathway_items=len(pathway),
                results=len(results),
                total=outcome.total,
                is_valid=validation.is_valid,
            )
            log.debug("search_timing", elapsed_ms=round(elapsed_ms, 2))

            return DiscoveryResponse(
                results=results,
                validation=validation,
                stats=outcome.stats,
                novelty=novelty,
                prompt=prompt,
                metadata=SearchMetadata(
                    total_results=outcome.total,
                    search_time_ms=elapsed_ms,
                    has_more_results=offset + len(outcome.results) < outcome.total,
                    search_filters=SearchFilters(
                        tag_names=[i.name for i in pathway if i.type == "tag"],
                        plot_block_names=[i.name for i in pathway if i.type == "plot_block"],
                    ),
                ),
            )

    def _pad(
        self,
        results: list[RankedStory],
        outcome: RankingOutcome,
        snapshot: TaxonomySnapshot,
        filters: StoryFilters | None,
        page_size: int,
    ) -> list[RankedStory]:
        """Fill the page that ends the ranked list with popular stories.

        Padding never repeats a scored candidate, obeys the caller's filters
        and is ranked after every ranked story. Later pages are not padded.
        """
        padding = self._ranking.popular(
            snapshot,
            exclude_ids=outcome.candidate_ids,
            count=min(self.min_results, page_size) - len(results),
            filters=filters,
        )
        for rank, story in enumerate(padding, start=outcome.total + 1):
            story.search_rank = rank
        if padding:
            log.debug("results_padded", added=len(padding))
        return [*results, *padding]

    # -- Completion ------------------------------------------------------------

    def get_completion_suggestions(
        self,
        pathway: Sequence[PathwayItem],
        fandom_id: str,
        limit: int = 5,
    ) -> list[Tag]:
        """Suggest tags from categories the pathway does not cover yet.

        One tag per uncovered category comes first, in taxonomy order, then
        further tags from those categories fill up to ``limit``.
        """
        with log_context(fandom_id=fandom_id):
            snapshot = self._snapshot(fandom_id)
        tags = snapshot.tags_by_id
        covered = {i.category for i in pathway if i.category}
        covered.update(
            tags[i.id].category for i in pathway if i.type == "tag" and i.id in tags
        )
        chosen = {i.id for i in pathway}
        candidates = [
            t
            for t in snapshot.tags
            if t.is_active and t.category and t.category not in covered and t.id not in chosen
        ]

        firsts: list[Tag] = []
        rest: list[Tag] = []
        seen_categories: set[str | None] = set()
        for tag in candidates:
            if tag.category in seen_categories:
                rest.append(tag)
            else:
                seen_categories.add(tag.category)
                firsts.append(tag)
        return [*firsts, *rest][: max(limit, 0)]
