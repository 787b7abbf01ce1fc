"""Structural checks on a pathway before any lookup happens."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from pensive.models.results import ResultItem, ValidationResult

if TYPE_CHECKING:
    from pensive.models.taxonomy import PathwayItem

SHAPE_RULE_NAME = "pathway_shape"
MAX_PATHWAY_ITEMS = 50


def validate_pathway_shape(pathway: Sequence[PathwayItem]) -> ValidationResult:
    """Check emptiness, duplicate ids and position ordering.

    An empty pathway or a repeated item id is an error. Positions that are
    not exactly ``0..n-1`` once sorted, and pathways longer than
    ``MAX_PATHWAY_ITEMS``, produce warnings only.
    """
    result = ValidationResult()
    if not pathway:
        result.errors.append(
            ResultItem(rule=SHAPE_RULE_NAME, message="Pathway cannot be empty", severity="high")
        )
        return result

    seen: set[str] = set()
    for item in pathway:
        if item.id in seen:
            result.errors.append(
                ResultItem(
                    rule=SHAPE_RULE_NAME,
                    message=f"Duplicate item: {item.name}",
                    severity="medium",
                    fix="Remove the repeated item",
                )
            )
        seen.add(item.id)

    positions = sorted(item.position for item in pathway)
    if positions != list(range(len(positions))):
        result.warnings.append(
            ResultItem(
                rule=SHAPE_RULE_NAME,
                message="Position sequence has gaps",
                severity="low",
                fix="Renumber positions from 0",
            )
        )

    if len(pathway) > MAX_PATHWAY_ITEMS:
        result.warnings.append(
            ResultItem(
                rule=SHAPE_RULE_NAME,
                message=f"Pathway has {len(pathway)} items; more than {MAX_PATHWAY_ITEMS} "
                "rarely matches any story",
                severity="low",
            )
        )
    return result


def ordered(pathway: Sequence[PathwayItem]) -> list[PathwayItem]:
    """Return the pathway sorted by position; ties keep their given order."""
    return sorted(pathway, key=lambda item: item.position)
