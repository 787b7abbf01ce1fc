"""Tests for taxonomy and result models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pensive.models import (
    InstanceLimits,
    PathwayItem,
    ResultItem,
    Story,
    TagCountCondition,
    ValidationResult,
)


class TestTaxonomyModels:
    """Tests for taxonomy model validation."""

    def test_instance_limit_bounds(self) -> None:
        """min_instances may not exceed max_instances."""
        with pytest.raises(ValidationError, match="exceeds"):
            InstanceLimits(min_instances=3, max_instances=1)
        InstanceLimits(min_instances=1, max_instances=1)

    def test_pathway_item_type_and_position(self) -> None:
        """Only tags and plot blocks at non-negative positions are items."""
        with pytest.raises(ValidationError):
            PathwayItem(id="x", type="character", name="x")
        with pytest.raises(ValidationError):
            PathwayItem(id="x", type="tag", name="x", position=-1)

    def test_story_defaults(self) -> None:
        """Missing counters default to zero and dates to None."""
        story = Story(id="s", fandom_id="f")
        assert (story.kudos, story.hits, story.bookmarks, story.word_count) == (0, 0, 0, 0)
        assert story.updated_at is None
        assert story.status == "complete"

    def test_story_null_counters_are_zero(self) -> None:
        """Explicit nulls in counter fields read as zero."""
        story = Story.model_validate(
            {
                "id": "s",
                "fandom_id": "f",
                "word_count": None,
                "kudos": None,
                "hits": None,
                "bookmarks": None,
                "updated_at": None,
            }
        )
        assert (story.kudos, story.hits, story.bookmarks, story.word_count) == (0, 0, 0, 0)

    def test_story_negative_counter_rejected(self) -> None:
        """Counters still have to be non-negative."""
        with pytest.raises(ValidationError):
            Story(id="s", fandom_id="f", kudos=-1)


class TestTagCountCondition:
    """Tests for tag_count validation."""

    def test_list_operators_need_lists(self) -> None:
        """in/not_in take a list; other operators take a number."""
        TagCountCondition(operator="in", value=[1, 2])
        with pytest.raises(ValidationError):
            TagCountCondition(operator="gt", value=[1, 2])
        with pytest.raises(ValidationError):
            TagCountCondition(operator="not_in", value=1)


class TestValidationResult:
    """Tests for ValidationResult."""

    def test_is_valid_ignores_warnings_and_suggestions(self) -> None:
        """Only errors and blocks make a result invalid."""
        item = ResultItem(rule="r", message="m")
        assert ValidationResult(warnings=[item], suggestions=[item]).is_valid
        assert not ValidationResult(errors=[item]).is_valid
        assert not ValidationResult(blocked_combinations=[item]).is_valid

    def test_merge_keeps_order(self) -> None:
        """merge appends the other result after this one."""
        first = ValidationResult(errors=[ResultItem(rule="a", message="1")], rules_evaluated=2)
        second = ValidationResult(errors=[ResultItem(rule="b", message="2")], rules_evaluated=3)
        merged = first.merge(second)
        assert [e.rule for e in merged.errors] == ["a", "b"]
        assert merged.rules_evaluated == 5

    def test_is_valid_serialized(self) -> None:
        """is_valid is part of the dumped result."""
        assert ValidationResult().model_dump()["is_valid"] is True
