"""Dict-backed taxonomy and rule store.

Used by tests and by callers that assemble a taxonomy in process. Writes
notify registered listeners with the affected fandom id so caches can
invalidate.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from pensive.store.protocols import TaxonomySnapshot

if TYPE_CHECKING:
    from pensive.models.rules import ValidationRule
    from pensive.models.taxonomy import Fandom, PlotBlock, Story, Tag, TagClass

WriteListener = Callable[[str], None]


class InMemoryTaxonomyStore:
    """TaxonomyAccessor and RuleStore over plain dicts keyed by id."""

    def __init__(self) -> None:
        self._fandoms: dict[str, Fandom] = {}
        self._tags: dict[str, Tag] = {}
        self._tag_classes: dict[str, TagClass] = {}
        self._plot_blocks: dict[str, PlotBlock] = {}
        self._stories: dict[str, Story] = {}
        self._rules: dict[str, ValidationRule] = {}
        self._listeners: list[WriteListener] = []

    def add_listener(self, listener: WriteListener) -> None:
        """Register a callback invoked with the fandom id after each write."""
        self._listeners.append(listener)

    def _notify(self, fandom_id: str) -> None:
        for listener in self._listeners:
            listener(fandom_id)

    # -- Writes ----------------------------------------------------------------

    def add_fandom(self, fandom: Fandom) -> None:
        self._fandoms[fandom.id] = fandom
        self._notify(fandom.id)

    def add_tag(self, tag: Tag) -> None:
        self._tags[tag.id] = tag
        self._notify(tag.fandom_id)

    def add_tag_class(self, tag_class: TagClass) -> None:
        self._tag_classes[tag_class.id] = tag_class
        self._notify(tag_class.fandom_id)

    def add_plot_block(self, plot_block: PlotBlock) -> None:
        self._plot_blocks[plot_block.id] = plot_block
        self._notify(plot_block.fandom_id)

    def add_story(self, story: Story) -> None:
        self._stories[story.id] = story
        self._notify(story.fandom_id)

    def add_rule(self, rule: ValidationRule) -> None:
        self._rules[rule.id] = rule
        self._notify(rule.fandom_id)

    def deactivate(self, kind: str, record_id: str) -> None:
        """Mark a record inactive.

        Args:
            kind: ``fandom``, ``tag``, ``tag_class``, ``plot_block``, ``story`` or ``rule``.
            record_id: Id of the record.

        Raises:
            KeyError: If no such record exists.
        """
        table = self._table(kind)
        record = table[record_id]
        table[record_id] = record.model_copy(update={"is_active": False})
        self._notify(getattr(record, "fandom_id", record_id))

    def _table(self, kind: str) -> dict:
        tables = {
            "fandom": self._fandoms,
            "tag": self._tags,
            "tag_class": self._tag_classes,
            "plot_block": self._plot_blocks,
            "story": self._stories,
            "rule": self._rules,
        }
        if kind not in tables:
            msg = f"Unknown record kind: {kind}"
            raise ValueError(msg)
        return tables[kind]

    # -- Reads -----------------------------------------------------------------

    def get(self, fandom_id: str, active_only: bool = True) -> TaxonomySnapshot:
        def owned(records: dict) -> tuple:
            return tuple(
                r
                for r in records.values()
                if r.fandom_id == fandom_id and (r.is_active or not active_only)
            )

        return TaxonomySnapshot(
            fandom=self._fandoms.get(fandom_id),
            tags=owned(self._tags),
            tag_classes=owned(self._tag_classes),
            plot_blocks=owned(self._plot_blocks),
            stories=owned(self._stories),
            active_only=active_only,
        )

    def list_active_rules(self, fandom_id: str) -> list[ValidationRule]:
        rules = [r for r in self._rules.values() if r.fandom_id == fandom_id and r.is_active]
        return sorted(rules, key=lambda r: -r.priority)
