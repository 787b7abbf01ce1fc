"""Tests for relevance factors."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from pensive.models import Fandom, PlotBlock, RelevanceBreakdown, Story, Tag
from pensive.search.ranking import RankingEngine
from pensive.search.relevance import (
    ScoreWeights,
    UserPreferences,
    categorize_length,
    category_match_score,
    combine_factors,
    exact_match_score,
    pathway_keywords,
    popularity_score,
    recency_score,
    semantic_similarity_score,
    story_keywords,
    user_alignment_score,
)
from pensive.store.memory import InMemoryTaxonomyStore
from tests.fixtures.taxonomy_fixtures import NOW, days_ago, plot_item, tag_item


class TestScoreWeights:
    """Tests for weight validation."""

    def test_defaults_sum_to_one(self) -> None:
        """The default weights are valid."""
        weights = ScoreWeights()
        assert weights.exact_matches == 0.40
        assert weights.user_alignment == 0.07

    def test_bad_sum_rejected(self) -> None:
        """Weights not summing to 1.00 are rejected."""
        with pytest.raises(ValidationError, match="sum to 1.00"):
            ScoreWeights(exact_matches=0.5)

    def test_custom_weights(self) -> None:
        """Any non-negative split summing to one is accepted."""
        ScoreWeights(
            exact_matches=1.0,
            category_matches=0,
            semantic_similarity=0,
            popularity=0,
            recency=0,
            user_alignment=0,
        )


class TestCombineFactors:
    """Tests for the weighted sum."""

    def test_all_max_is_hundred(self) -> None:
        """Every factor at 100 gives 100."""
        breakdown = RelevanceBreakdown(
            exact_matches=100,
            category_matches=100,
            semantic_similarity=100,
            popularity=100,
            recency=100,
            user_alignment=100,
        )
        assert combine_factors(breakdown, ScoreWeights()) == pytest.approx(100)

    def test_clamped(self) -> None:
        """Out-of-range factors cannot push the score outside [0, 100]."""
        high = RelevanceBreakdown(exact_matches=1000)
        low = RelevanceBreakdown(exact_matches=-1000)
        assert combine_factors(high, ScoreWeights()) == 100.0
        assert combine_factors(low, ScoreWeights()) == 0.0

    def test_worked_example(self) -> None:
        """exact 100, recency 100, alignment 50 gives 51.5."""
        breakdown = RelevanceBreakdown(exact_matches=100, recency=100, user_alignment=50)
        assert combine_factors(breakdown, ScoreWeights()) == pytest.approx(51.5)


class TestFactors:
    """Tests for the individual factors."""

    def test_exact_match(self) -> None:
        """Share of pathway items found on the story, by type."""
        pathway = [tag_item("t1", "a"), plot_item("p1", "b", position=1)]
        assert exact_match_score(pathway, {"t1"}, {"p1"}) == 100
        assert exact_match_score(pathway, {"t1"}, set()) == 50
        assert exact_match_score(pathway, {"p1"}, set()) == 0
        assert exact_match_score([], {"t1"}, set()) == 0

    def test_category_match(self) -> None:
        """Same-category pairs over all comparisons; None never matches."""
        score = category_match_score((["ship", "genre"], []), (["ship", None], []))
        assert score == pytest.approx(25)
        assert category_match_score(([None], []), ([None], [])) == 0
        assert category_match_score(([], ["arc"]), (["arc"], [])) == 0
        assert category_match_score(([], []), ([], [])) == 0

    def test_keywords(self) -> None:
        """Names and their tokens, lowercased, short tokens dropped."""
        keywords = pathway_keywords([tag_item("t", "Harry/Hermione"), tag_item("u", "AU")])
        assert keywords == ["harry/hermione", "harry", "hermione"]
        story = Story(id="s", fandom_id="f", title="Time-Turner", summary="A tale of time")
        assert story_keywords(story) == ["time", "turner", "tale"]

    def test_semantic_similarity(self) -> None:
        """Substring overlap in either direction counts."""
        assert semantic_similarity_score(["time", "goblin"], ["timeline"]) == 50
        assert semantic_similarity_score(["timeline"], ["time"]) == 100
        assert semantic_similarity_score([], ["time"]) == 0

    def test_popularity(self) -> None:
        """Counters are capped then weighted 40/35/25."""
        assert popularity_score(Story(id="s", fandom_id="f")) == 0
        capped = Story(id="s", fandom_id="f", kudos=50_000, hits=10**6, bookmarks=10**5)
        assert popularity_score(capped) == pytest.approx(100)
        half = Story(id="s", fandom_id="f", kudos=5_000, hits=50_000, bookmarks=2_500)
        assert popularity_score(half) == pytest.approx(50)

    @pytest.mark.parametrize(
        ("age_days", "expected"),
        [(0, 100), (30, 100), (197.5, 50), (365, 0), (1000, 0)],
    )
    def test_recency(self, age_days: float, expected: float) -> None:
        """Full score for a month, linear decay to zero at a year."""
        assert recency_score(days_ago(age_days), NOW) == pytest.approx(expected)

    def test_recency_missing_and_naive(self) -> None:
        """No date scores zero; naive dates are read as UTC."""
        assert recency_score(None, NOW) == 0
        naive = datetime(2026, 9, 25, 12, 0)
        assert recency_score(naive, NOW) == 100

    @pytest.mark.parametrize(
        ("words", "bucket"),
        [
            (0, "drabble"),
            (999, "drabble"),
            (1_000, "oneshot"),
            (4_999, "oneshot"),
            (5_000, "short"),
            (20_000, "medium"),
            (50_000, "long"),
            (100_000, "epic"),
        ],
    )
    def test_length_buckets(self, words: int, bucket: str) -> None:
        """Word counts bucket by upper bound."""
        assert categorize_length(words) == bucket


class TestUserAlignment:
    """Tests for preference alignment."""

    def test_no_preferences_is_neutral(self) -> None:
        """Without preferences the score is 50."""
        assert user_alignment_score(Story(id="s", fandom_id="f"), set(), None) == 50
        assert user_alignment_score(Story(id="s", fandom_id="f"), set(), UserPreferences()) == 50

    def test_scaled_by_supplied_dimensions(self) -> None:
        """Each matched dimension is worth its share of 100."""
        story = Story(id="s", fandom_id="f", rating="T", word_count=3_000, status="complete")
        prefs = UserPreferences(ratings=["T"], lengths=["epic"])
        assert user_alignment_score(story, set(), prefs) == 50
        prefs = UserPreferences(ratings=["T"], lengths=["oneshot"], statuses=["complete"])
        assert user_alignment_score(story, set(), prefs) == 100

    def test_boost_tags_check_story_tags(self) -> None:
        """Boost tags count only when the story carries one."""
        story = Story(id="s", fandom_id="f")
        prefs = UserPreferences(boost_tag_ids=["t-angst"])
        assert user_alignment_score(story, {"t-angst"}, prefs) == 100
        assert user_alignment_score(story, {"t-fluff"}, prefs) == 0

    def test_unrated_story(self) -> None:
        """A story with no rating matches an 'unrated' preference."""
        prefs = UserPreferences(ratings=["unrated"])
        assert user_alignment_score(Story(id="s", fandom_id="f"), set(), prefs) == 100


class TestScoredExample:
    """End-to-end check of the documented relevance example."""

    def test_fifty_one_and_a_half(self) -> None:
        """Full match, no categories, no keywords, no counters, fresh, no prefs."""
        store = InMemoryTaxonomyStore()
        store.add_fandom(Fandom(id="f", name="F"))
        store.add_tag(Tag(id="t", fandom_id="f", name="time-travel"))
        store.add_plot_block(PlotBlock(id="p", fandom_id="f", name="Goblin Inheritance"))
        story = Story(
            id="s",
            fandom_id="f",
            title="Zzz",
            tag_ids=["t"],
            plot_block_ids=["p"],
            updated_at=days_ago(10),
        )
        store.add_story(story)
        pathway = [tag_item("t", "time-travel", None, 0), plot_item("p", "Goblin Inheritance", None, 1)]

        ranked = RankingEngine(clock=lambda: NOW).score_story(pathway, story, store.get("f"))
        assert ranked.factors.exact_matches == 100
        assert ranked.factors.category_matches == 0
        assert ranked.factors.semantic_similarity == 0
        assert ranked.factors.popularity == 0
        assert ranked.factors.recency == 100
        assert ranked.factors.user_alignment == 50
        assert ranked.relevance_score == pytest.approx(51.5)
        assert ranked.matched_tags == ["t"]
        assert ranked.matched_plot_blocks == ["p"]
