"""Read contracts consumed by the engine, and the per-call snapshot.

The engine never talks to persistence directly. Each call fetches one
:class:`TaxonomySnapshot` from a :class:`TaxonomyAccessor` and one rule list
from a :class:`RuleStore`, then computes purely from those values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pensive.models.rules import ValidationRule
    from pensive.models.taxonomy import Fandom, PlotBlock, Story, Tag, TagClass


@dataclass(frozen=True)
class TaxonomySnapshot:
    """All taxonomy records of one fandom, as read at the start of a call.

    Attributes:
        fandom: The fandom record, or None when it does not exist.
        tags: Tags owned by the fandom.
        tag_classes: Tag classes owned by the fandom.
        plot_blocks: Plot blocks owned by the fandom.
        stories: Stories owned by the fandom, with associations loaded.
    """

    fandom: Fandom | None
    tags: tuple[Tag, ...] = ()
    tag_classes: tuple[TagClass, ...] = ()
    plot_blocks: tuple[PlotBlock, ...] = ()
    stories: tuple[Story, ...] = ()
    active_only: bool = field(default=True, compare=False)

    @cached_property
    def tags_by_id(self) -> dict[str, Tag]:
        return {t.id: t for t in self.tags}

    @cached_property
    def tag_classes_by_id(self) -> dict[str, TagClass]:
        return {c.id: c for c in self.tag_classes}

    @cached_property
    def plot_blocks_by_id(self) -> dict[str, PlotBlock]:
        return {p.id: p for p in self.plot_blocks}

    def active_ids(self, kind: str) -> set[str]:
        """Ids of active, fandom-owned records of ``kind``.

        Args:
            kind: One of ``"tag"``, ``"plot_block"``, ``"tag_class"``.
        """
        records = {
            "tag": self.tags,
            "plot_block": self.plot_blocks,
            "tag_class": self.tag_classes,
        }[kind]
        fandom_id = self.fandom.id if self.fandom else None
        return {r.id for r in records if r.is_active and r.fandom_id == fandom_id}


@runtime_checkable
class TaxonomyAccessor(Protocol):
    """Read-only, fandom-scoped access to taxonomy records."""

    def get(self, fandom_id: str, active_only: bool = True) -> TaxonomySnapshot:
        """Return the fandom's records.

        With ``active_only`` set, inactive tags, classes, plot blocks and
        stories are omitted. The fandom record itself is always returned
        when it exists so callers can distinguish missing from inactive.
        """
        ...


@runtime_checkable
class RuleStore(Protocol):
    """Read access to a fandom's validation rules."""

    def list_active_rules(self, fandom_id: str) -> list[ValidationRule]:
        """Return active rules, fully hydrated, sorted by priority descending.

        Each rule's conditions and actions are read as one consistent unit.
        """
        ...
