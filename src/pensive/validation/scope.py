"""Fandom scoping and plot-block hierarchy checks.

Every id a pathway or taxonomy record references must resolve to an active
record of the same fandom. Violations are returned as structured items; the
caller decides whether they block anything.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NamedTuple

from pensive.models.results import (
    RelationshipError,
    ResultItem,
    ScopeViolations,
    ValidationResult,
)
from pensive.observability.logging import get_logger

if TYPE_CHECKING:
    from pensive.models.taxonomy import PathwayItem
    from pensive.store.protocols import TaxonomySnapshot

log = get_logger(__name__)

SCOPE_RULE_NAME = "fandom_scope"


class HierarchyEdge(NamedTuple):
    """A plot-block link: ``child_id`` sits under ``parent_id``."""

    child_id: str
    parent_id: str


@dataclass
class EntityRelationships:
    """Links to cross-check against one fandom.

    Attributes:
        tag_to_tag_class: ``(tag_id, tag_class_id)`` pairs.
        plot_block_hierarchy: Child/parent plot-block edges.
        tag_dependencies: ``(tag_id, [dependency tag ids])`` pairs.
        plot_block_dependencies: ``(plot_block_id, [referenced plot block ids])`` pairs.
    """

    tag_to_tag_class: list[tuple[str, str]] = field(default_factory=list)
    plot_block_hierarchy: list[HierarchyEdge] = field(default_factory=list)
    tag_dependencies: list[tuple[str, list[str]]] = field(default_factory=list)
    plot_block_dependencies: list[tuple[str, list[str]]] = field(default_factory=list)


def _outside(ids: Iterable[str], members: set[str]) -> list[str]:
    return list(dict.fromkeys(i for i in ids if i not in members))


def validate_fandom_scope(
    snapshot: TaxonomySnapshot,
    *,
    tag_ids: Iterable[str] = (),
    plot_block_ids: Iterable[str] = (),
    tag_class_ids: Iterable[str] = (),
) -> ScopeViolations:
    """Return the ids that are not active members of the snapshot's fandom.

    Order of first appearance is kept and duplicates are reported once.
    Empty lists in the result mean every id is in scope.
    """
    return ScopeViolations(
        invalid_tags=_outside(tag_ids, snapshot.active_ids("tag")),
        invalid_plot_blocks=_outside(plot_block_ids, snapshot.active_ids("plot_block")),
        invalid_tag_classes=_outside(tag_class_ids, snapshot.active_ids("tag_class")),
    )


def pathway_scope_result(
    snapshot: TaxonomySnapshot,
    pathway: Sequence[PathwayItem],
) -> ValidationResult:
    """Check a pathway's item ids against the fandom and report errors."""
    violations = validate_fandom_scope(
        snapshot,
        tag_ids=[i.id for i in pathway if i.type == "tag"],
        plot_block_ids=[i.id for i in pathway if i.type == "plot_block"],
    )
    if violations.is_valid:
        return ValidationResult()

    fandom_id = snapshot.fandom.id if snapshot.fandom else "?"
    names = {(i.type, i.id): i.name for i in pathway}
    errors = [
        ResultItem(
            rule=SCOPE_RULE_NAME,
            message=(
                f"{label} '{names[(kind, item_id)]}' ({item_id}) is not an active "
                f"{label.lower()} of fandom {fandom_id}"
            ),
            severity="high",
            fix="Remove the item or pick one from this fandom",
        )
        for kind, label, ids in (
            ("tag", "Tag", violations.invalid_tags),
            ("plot_block", "Plot block", violations.invalid_plot_blocks),
        )
        for item_id in ids
    ]
    log.info("pathway_out_of_scope", fandom_id=fandom_id, count=len(errors))
    return ValidationResult(errors=errors)


def detect_circular_dependencies(
    edges: Iterable[HierarchyEdge | tuple[str, str]],
) -> list[list[str]]:
    """Find cycles in a child/parent graph.

    Builds a parent -> children adjacency list and walks it depth first with
    an explicit stack, starting from each parent in order of first
    appearance. When a node already on the current path is reached again,
    the path from that node's position through the current node, closed with
    the node itself, is recorded as one cycle and the walk from that root
    stops. A self-loop yields ``[node, node]``.

    Args:
        edges: ``(child_id, parent_id)`` pairs.

    Returns:
        Zero or more cycles, each an ordered id list ending where it started.
    """
    adjacency: dict[str, list[str]] = {}
    for child_id, parent_id in edges:
        adjacency.setdefault(parent_id, []).append(child_id)

    visited: set[str] = set()
    cycles: list[list[str]] = []

    for root in adjacency:
        if root in visited:
            continue
        visited.add(root)
        path = [root]
        on_path = {root: 0}
        stack = [iter(adjacency.get(root, ()))]

        while stack:
            for neighbor in stack[-1]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    on_path[neighbor] = len(path)
                    path.append(neighbor)
                    stack.append(iter(adjacency.get(neighbor, ())))
                    break
                if neighbor in on_path:
                    cycles.append([*path[on_path[neighbor] :], neighbor])
                    stack.clear()
                    break
            else:
                del on_path[path.pop()]
                stack.pop()

    if cycles:
        log.info("hierarchy_cycles_detected", count=len(cycles))
    return cycles


def validate_entity_relationships(
    snapshot: TaxonomySnapshot,
    relationships: EntityRelationships,
) -> list[RelationshipError]:
    """Cross-check taxonomy links against the snapshot's fandom.

    Returns:
        Typed errors in a stable order: tag classes, hierarchy membership,
        hierarchy cycles, tag dependencies, plot-block dependencies.
    """
    fandom_id = snapshot.fandom.id if snapshot.fandom else "?"
    tags = snapshot.active_ids("tag")
    classes = snapshot.active_ids("tag_class")
    blocks = snapshot.active_ids("plot_block")
    errors: list[RelationshipError] = []

    for tag_id, class_id in relationships.tag_to_tag_class:
        if tag_id not in tags:
            errors.append(
                RelationshipError(
                    type="cross_fandom_reference",
                    message=f"Tag {tag_id} does not belong to fandom {fandom_id}",
                    entity_id=tag_id,
                    related_id=class_id,
                )
            )
        if class_id not in classes:
            errors.append(
                RelationshipError(
                    type="invalid_tag_class",
                    message=f"Tag class {class_id} does not belong to fandom {fandom_id}",
                    entity_id=tag_id,
                    related_id=class_id,
                )
            )

    for child_id, parent_id in relationships.plot_block_hierarchy:
        if child_id not in blocks:
            errors.append(
                RelationshipError(
                    type="cross_fandom_reference",
                    message=f"Plot block {child_id} does not belong to fandom {fandom_id}",
                    entity_id=child_id,
                    related_id=parent_id,
                )
            )
        if parent_id not in blocks:
            errors.append(
                RelationshipError(
                    type="invalid_parent",
                    message=f"Parent plot block {parent_id} does not belong to fandom {fandom_id}",
                    entity_id=child_id,
                    related_id=parent_id,
                )
            )

    for cycle in detect_circular_dependencies(relationships.plot_block_hierarchy):
        errors.append(
            RelationshipError(
                type="circular_dependency",
                message=(
                    "Circular dependency detected in plot block hierarchy: "
                    + " -> ".join(cycle)
                ),
                entity_id=cycle[0],
                related_id=cycle[-1],
            )
        )

    for members, label, links in (
        (tags, "Tag", relationships.tag_dependencies),
        (blocks, "Plot block", relationships.plot_block_dependencies),
    ):
        for entity_id, depends_on in links:
            for invalid_id in _outside([entity_id, *depends_on], members):
                errors.append(
                    RelationshipError(
                        type="cross_fandom_reference",
                        message=f"{label} {invalid_id} does not belong to fandom {fandom_id}",
                        entity_id=entity_id,
                        related_id=invalid_id,
                    )
                )

    return errors


def relationships_from_snapshot(snapshot: TaxonomySnapshot) -> EntityRelationships:
    """Collect every link recorded on the fandom's own taxonomy records."""
    relationships = EntityRelationships()
    seen_edges: set[HierarchyEdge] = set()

    def add_edge(edge: HierarchyEdge) -> None:
        if edge not in seen_edges:
            seen_edges.add(edge)
            relationships.plot_block_hierarchy.append(edge)

    for block in snapshot.plot_blocks:
        if block.parent_id:
            add_edge(HierarchyEdge(block.id, block.parent_id))
        for child_id in block.children:
            add_edge(HierarchyEdge(child_id, block.id))
        references = [
            *block.conflicts_with,
            *block.requires,
            *block.soft_requires,
            *block.enhances,
            *block.enabled_by,
        ]
        if references:
            relationships.plot_block_dependencies.append((block.id, references))

    for tag in snapshot.tags:
        if tag.tag_class_id:
            relationships.tag_to_tag_class.append((tag.id, tag.tag_class_id))
        if tag.requires or tag.enhances:
            relationships.tag_dependencies.append((tag.id, [*tag.requires, *tag.enhances]))

    return relationships


def check_hierarchy(snapshot: TaxonomySnapshot) -> list[RelationshipError]:
    """Audit the whole fandom taxonomy for scope and hierarchy problems."""
    errors = validate_entity_relationships(snapshot, relationships_from_snapshot(snapshot))
    log.info(
        "hierarchy_checked",
        fandom_id=snapshot.fandom.id if snapshot.fandom else None,
        error_count=len(errors),
    )
    return errors
