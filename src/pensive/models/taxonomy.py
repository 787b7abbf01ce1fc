"""Taxonomy records scoped to a fandom.

A fandom owns tags, tag classes and plot blocks. Plot blocks form a forest
through ``parent_id``/``children``; tags optionally belong to one tag class
whose sub-rules constrain how the class's tags combine in a pathway.

Every record carries its owning ``fandom_id`` and an ``is_active`` flag. Ids
listed in ``requires``/``enhances``/``conflicts_with`` and friends are ids of
records in the same fandom.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - pydantic resolves at runtime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

PathwayItemType = Literal["tag", "plot_block"]


class Fandom(BaseModel):
    """A fictional universe; the root of all scoping."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    slug: str = ""
    is_active: bool = True


class Tag(BaseModel):
    """An atomic narrative element such as a pairing, trope or genre."""

    id: str = Field(min_length=1)
    fandom_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category: str | None = None
    description: str = ""
    requires: list[str] = Field(default_factory=list)
    enhances: list[str] = Field(default_factory=list)
    tag_class_id: str | None = None
    is_active: bool = True


# ---------------------------------------------------------------------------
# Tag class sub-rules
# ---------------------------------------------------------------------------


class MutualExclusion(BaseModel):
    """Tags that may not be combined with this class's tags."""

    within_class: bool = False
    conflicting_tags: list[str] = Field(default_factory=list)
    conflicting_classes: list[str] = Field(default_factory=list)


class RequiredContext(BaseModel):
    """Tags or classes that must accompany this class's tags."""

    required_tags: list[str] = Field(default_factory=list)
    required_classes: list[str] = Field(default_factory=list)
    required_metadata: list[str] = Field(default_factory=list)


class InstanceLimits(BaseModel):
    """How many of the class's tags a pathway may carry."""

    max_instances: int | None = Field(default=None, ge=0)
    min_instances: int | None = Field(default=None, ge=0)
    exact_instances: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> InstanceLimits:
        if (
            self.min_instances is not None
            and self.max_instances is not None
            and self.min_instances > self.max_instances
        ):
            msg = f"min_instances ({self.min_instances}) exceeds max_instances ({self.max_instances})"
            raise ValueError(msg)
        return self


class CategoryRestrictions(BaseModel):
    """Categories and plot blocks the class's tags depend on or exclude."""

    applicable_categories: list[str] = Field(default_factory=list)
    excluded_categories: list[str] = Field(default_factory=list)
    required_plot_blocks: list[str] = Field(default_factory=list)


class ClassDependencies(BaseModel):
    """Tags this class's tags require, enhance or enable."""

    requires: list[str] = Field(default_factory=list)
    enhances: list[str] = Field(default_factory=list)
    enables: list[str] = Field(default_factory=list)


class TagClass(BaseModel):
    """A grouping of tags carrying optional validation sub-rules."""

    id: str = Field(min_length=1)
    fandom_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    mutual_exclusion: MutualExclusion | None = None
    required_context: RequiredContext | None = None
    instance_limits: InstanceLimits | None = None
    category_restrictions: CategoryRestrictions | None = None
    dependencies: ClassDependencies | None = None
    is_active: bool = True


class PlotBlock(BaseModel):
    """A plot element; plot blocks form a parent/child forest."""

    id: str = Field(min_length=1)
    fandom_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category: str | None = None
    description: str = ""
    parent_id: str | None = None
    children: list[str] = Field(default_factory=list)
    conflicts_with: list[str] = Field(default_factory=list)
    requires: list[str] = Field(default_factory=list)
    soft_requires: list[str] = Field(default_factory=list)
    enhances: list[str] = Field(default_factory=list)
    enabled_by: list[str] = Field(default_factory=list)
    excludes_categories: list[str] = Field(default_factory=list)
    max_instances: int | None = Field(default=None, ge=0)
    is_active: bool = True


class Story(BaseModel):
    """A published story with its taxonomy associations and counters.

    Counters and ``updated_at`` are optional in source data; missing values
    default to zero or ``None`` so scoring never fails on them.
    """

    id: str = Field(min_length=1)
    fandom_id: str = Field(min_length=1)
    title: str = ""
    summary: str = ""
    author: str = ""
    tag_ids: list[str] = Field(default_factory=list)
    plot_block_ids: list[str] = Field(default_factory=list)
    word_count: int = Field(default=0, ge=0)
    status: str = "complete"
    rating: str | None = None
    language: str | None = None
    kudos: int = Field(default=0, ge=0)
    hits: int = Field(default=0, ge=0)
    bookmarks: int = Field(default=0, ge=0)
    updated_at: datetime | None = None
    is_active: bool = True

    @field_validator("word_count", "kudos", "hits", "bookmarks", mode="before")
    @classmethod
    def _null_counter_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class PathwayItem(BaseModel):
    """One selection in a user's pathway."""

    id: str = Field(min_length=1)
    type: PathwayItemType
    name: str = Field(min_length=1)
    category: str | None = None
    position: int = Field(default=0, ge=0)
