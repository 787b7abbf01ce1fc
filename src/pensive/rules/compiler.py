"""Compile taxonomy constraints into ordinary validation rules.

Tag class sub-rules, tag ``requires``/``enhances`` lists and plot-block
relationship lists are all expressed with the same condition language as
stored rules, so a single evaluator handles everything. The taxonomy stores
ids; conditions test names, so references are resolved against the
snapshot. References that do not resolve are skipped here and reported by
the hierarchy audit instead.

Each compiled rule pairs a trigger (a tag, a plot block or "the class is in
use") with the condition that makes it fire, all in the AND-group. Only the
exact instance check needs an OR-group.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pensive.models.rules import (
    CombinationCondition,
    ExclusionCondition,
    HasPlotBlockCondition,
    HasTagCondition,
    RuleAction,
    TagCountCondition,
    ValidationRule,
)
from pensive.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pensive.models.rules import ActionType, RuleCondition, Severity
    from pensive.models.taxonomy import PlotBlock, Tag, TagClass
    from pensive.store.protocols import TaxonomySnapshot

log = get_logger(__name__)


class _Compiler:
    def __init__(self, snapshot: TaxonomySnapshot, priority: int) -> None:
        self.snapshot = snapshot
        self.priority = priority
        self.fandom_id = snapshot.fandom.id if snapshot.fandom else ""
        self.rules: list[ValidationRule] = []
        self.tags_by_id = {t.id: t for t in snapshot.tags if t.is_active}
        self.blocks_by_id = {p.id: p for p in snapshot.plot_blocks if p.is_active}
        self.class_tags: dict[str, list[str]] = {}
        for tag in self.tags_by_id.values():
            if tag.tag_class_id:
                self.class_tags.setdefault(tag.tag_class_id, []).append(tag.name)

    # -- Helpers ---------------------------------------------------------------

    def tag_names(self, ids: Iterable[str]) -> list[str]:
        return [self.tags_by_id[i].name for i in ids if i in self.tags_by_id]

    def block_names(self, ids: Iterable[str]) -> list[str]:
        return [self.blocks_by_id[i].name for i in ids if i in self.blocks_by_id]

    def in_categories(
        self, categories: Iterable[str], exclude: Iterable[str] = ()
    ) -> tuple[list[str], list[str]]:
        wanted = set(categories)
        skip = set(exclude)
        tags = [
            t.name
            for t in self.tags_by_id.values()
            if t.category in wanted and t.name not in skip
        ]
        blocks = [
            p.name
            for p in self.blocks_by_id.values()
            if p.category in wanted and p.name not in skip
        ]
        return tags, blocks

    def add(
        self,
        rule_id: str,
        name: str,
        conditions: list[RuleCondition],
        action: ActionType,
        message: str,
        *,
        severity: Severity = "medium",
        fix: str | None = None,
    ) -> None:
        self.rules.append(
            ValidationRule(
                id=rule_id,
                fandom_id=self.fandom_id,
                name=name,
                category="taxonomy",
                priority=self.priority,
                conditions=conditions,
                actions=[
                    RuleAction(type=action, severity=severity, message=message, suggested_fix=fix)
                ],
            )
        )

    # -- Tag classes -----------------------------------------------------------

    def tag_class(self, tag_class: TagClass) -> None:
        members = self.class_tags.get(tag_class.id, [])
        if not members:
            return
        base = f"tag_class:{tag_class.id}"
        label = tag_class.name
        in_use = TagCountCondition(operator="gt", value=0, names=members)

        exclusion = tag_class.mutual_exclusion
        if exclusion is not None:
            if exclusion.within_class:
                self.add(
                    f"{base}:within_class",
                    f"{label} exclusivity",
                    [TagCountCondition(operator="gt", value=1, names=members)],
                    "block",
                    f"Only one {label} tag may be selected",
                    severity="high",
                )
            conflicts = self.tag_names(exclusion.conflicting_tags)
            for other_id in exclusion.conflicting_classes:
                conflicts.extend(self.class_tags.get(other_id, []))
            conflicts = [n for n in dict.fromkeys(conflicts) if n not in members]
            if conflicts:
                self.add(
                    f"{base}:conflicts",
                    f"{label} conflicts",
                    [in_use, ExclusionCondition(value=conflicts)],
                    "block",
                    f"{label} tags cannot be combined with: {', '.join(conflicts)}",
                    severity="high",
                )

        context = tag_class.required_context
        if context is not None:
            required = self.tag_names(context.required_tags)
            if required:
                self.add(
                    f"{base}:required_tags",
                    f"{label} required context",
                    [in_use, CombinationCondition(value=required, negate=True)],
                    "error",
                    f"{label} tags require: {', '.join(required)}",
                    fix=f"Add {', '.join(required)}",
                )
            for class_id in context.required_classes:
                other = self.snapshot.tag_classes_by_id.get(class_id)
                if other is None:
                    continue
                self.add(
                    f"{base}:required_class:{class_id}",
                    f"{label} required context",
                    [
                        in_use,
                        TagCountCondition(
                            operator="equals", value=0, names=self.class_tags.get(class_id, [])
                        ),
                    ],
                    "error",
                    f"{label} tags require a {other.name} tag",
                )

        limits = tag_class.instance_limits
        if limits is not None:
            if limits.max_instances is not None:
                self.add(
                    f"{base}:max_instances",
                    f"{label} instance limit",
                    [TagCountCondition(operator="gt", value=limits.max_instances, names=members)],
                    "error",
                    f"At most {limits.max_instances} {label} tag(s) allowed",
                )
            if limits.min_instances:
                self.add(
                    f"{base}:min_instances",
                    f"{label} instance limit",
                    [
                        in_use,
                        TagCountCondition(operator="lt", value=limits.min_instances, names=members),
                    ],
                    "error",
                    f"At least {limits.min_instances} {label} tag(s) required",
                )
            if limits.exact_instances is not None:
                exact = limits.exact_instances
                self.add(
                    f"{base}:exact_instances",
                    f"{label} instance limit",
                    [
                        in_use,
                        TagCountCondition(operator="lt", value=exact, names=members, logic="OR"),
                        TagCountCondition(operator="gt", value=exact, names=members, logic="OR"),
                    ],
                    "error",
                    f"Exactly {exact} {label} tag(s) required",
                )

        restrictions = tag_class.category_restrictions
        if restrictions is not None:
            tags, blocks = self.in_categories(restrictions.excluded_categories, exclude=members)
            if tags or blocks:
                self.add(
                    f"{base}:excluded_categories",
                    f"{label} category restriction",
                    [in_use, ExclusionCondition(value=[*tags, *blocks])],
                    "block",
                    f"{label} tags exclude categories: "
                    f"{', '.join(restrictions.excluded_categories)}",
                    severity="high",
                )
            tags, blocks = self.in_categories(restrictions.applicable_categories, exclude=members)
            if tags or blocks:
                self.add(
                    f"{base}:applicable_categories",
                    f"{label} category restriction",
                    [in_use, ExclusionCondition(value=[*tags, *blocks], negate=True)],
                    "warning",
                    f"{label} tags apply to categories: "
                    f"{', '.join(restrictions.applicable_categories)}",
                    severity="low",
                )
            required_blocks = self.block_names(restrictions.required_plot_blocks)
            if required_blocks:
                self.add(
                    f"{base}:required_plot_blocks",
                    f"{label} required plot blocks",
                    [in_use, CombinationCondition(value=required_blocks, negate=True)],
                    "error",
                    f"{label} tags require plot blocks: {', '.join(required_blocks)}",
                )

        dependencies = tag_class.dependencies
        if dependencies is not None:
            self.dependency_pair(
                base,
                label,
                in_use,
                self.tag_names(dependencies.requires),
                self.tag_names(dependencies.enhances),
            )

    # -- Tags and plot blocks --------------------------------------------------

    def dependency_pair(
        self,
        base: str,
        label: str,
        trigger: RuleCondition,
        requires: list[str],
        enhances: list[str],
        *,
        soft: bool = False,
    ) -> None:
        if requires:
            self.add(
                f"{base}:{'soft_requires' if soft else 'requires'}",
                f"{label} {'soft ' if soft else ''}dependency",
                [trigger, CombinationCondition(value=requires, negate=True)],
                "warning" if soft else "error",
                f"{label} {'works best with' if soft else 'requires'}: {', '.join(requires)}",
                fix=f"Add {', '.join(requires)}",
                severity="low" if soft else "medium",
            )
        if enhances:
            self.add(
                f"{base}:enhances",
                f"{label} enhancement",
                [trigger, ExclusionCondition(value=enhances, negate=True)],
                "suggestion",
                f"{label} pairs well with: {', '.join(enhances)}",
                severity="low",
            )

    def tag(self, tag: Tag) -> None:
        self.dependency_pair(
            f"tag:{tag.id}",
            tag.name,
            HasTagCondition(value=tag.name),
            self.tag_names(tag.requires),
            self.tag_names(tag.enhances),
        )

    def plot_block(self, block: PlotBlock) -> None:
        base = f"plot_block:{block.id}"
        trigger = HasPlotBlockCondition(value=block.name)

        conflicts = self.block_names(block.conflicts_with)
        if conflicts:
            self.add(
                f"{base}:conflicts",
                f"{block.name} conflicts",
                [trigger, ExclusionCondition(value=conflicts)],
                "block",
                f"{block.name} conflicts with: {', '.join(conflicts)}",
                severity="high",
            )
        self.dependency_pair(
            base, block.name, trigger, self.block_names(block.requires), []
        )
        self.dependency_pair(
            base,
            block.name,
            trigger,
            self.block_names(block.soft_requires),
            self.block_names(block.enhances),
            soft=True,
        )
        enablers = self.block_names(block.enabled_by)
        if enablers:
            self.add(
                f"{base}:enabled_by",
                f"{block.name} prerequisites",
                [trigger, ExclusionCondition(value=enablers, negate=True)],
                "error",
                f"{block.name} needs one of: {', '.join(enablers)}",
                fix=f"Add one of {', '.join(enablers)}",
            )
        if block.excludes_categories:
            tags, blocks = self.in_categories(block.excludes_categories, exclude=[block.name])
            if tags or blocks:
                self.add(
                    f"{base}:excludes_categories",
                    f"{block.name} category restriction",
                    [trigger, ExclusionCondition(value=[*tags, *blocks])],
                    "block",
                    f"{block.name} excludes categories: {', '.join(block.excludes_categories)}",
                    severity="high",
                )


def compile_taxonomy_rules(snapshot: TaxonomySnapshot, priority: int = 0) -> list[ValidationRule]:
    """Compile a fandom's taxonomy constraints into validation rules.

    Args:
        snapshot: The fandom's taxonomy records.
        priority: Priority given to every compiled rule.

    Returns:
        Rules with deterministic ids such as ``tag:{id}:requires`` or
        ``tag_class:{id}:max_instances``, in taxonomy order.
    """
    if snapshot.fandom is None:
        return []
    compiler = _Compiler(snapshot, priority)
    for tag_class in snapshot.tag_classes:
        if tag_class.is_active:
            compiler.tag_class(tag_class)
    for tag in snapshot.tags:
        if tag.is_active:
            compiler.tag(tag)
    for block in snapshot.plot_blocks:
        if block.is_active:
            compiler.plot_block(block)
    log.debug("taxonomy_rules_compiled", fandom_id=compiler.fandom_id, count=len(compiler.rules))
    return compiler.rules
